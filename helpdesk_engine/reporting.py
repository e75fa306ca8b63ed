"""Export a trained snapshot as HTML, CSV and JSON files."""
from __future__ import annotations

import csv
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence

from jinja2 import Template

from .records import SlaRiskEntry
from .training import TrainingState

LOGGER = logging.getLogger(__name__)

HTML_TEMPLATE = Template(
    """
<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <title>Helpdesk Knowledge Base Report</title>
    <style>
      body { font-family: Arial, sans-serif; margin: 2rem; }
      h1, h2 { color: #1f3b4d; }
      table { border-collapse: collapse; margin-bottom: 1.5rem; }
      th, td { border: 1px solid #ccc; padding: 0.4rem 0.6rem; text-align: left; }
      th { background-color: #f0f6fb; }
      td.num { text-align: right; }
    </style>
  </head>
  <body>
    <h1>Helpdesk Knowledge Base Report</h1>
    <p>Training cycle {{ metrics.version }} &middot; {{ metrics.ticket_count }} tickets &middot; trained {{ metrics.trained_at }}</p>

    <h2>Model accuracy</h2>
    {% if metrics.accuracy %}
    <table>
      <tr><th>Category accuracy</th><td class="num">{{ "%.1f"|format(metrics.accuracy.category_accuracy * 100) }}%</td></tr>
      <tr><th>Priority accuracy</th><td class="num">{{ "%.1f"|format(metrics.accuracy.priority_accuracy * 100) }}%</td></tr>
      <tr><th>Overall score</th><td class="num">{{ "%.1f"|format(metrics.accuracy.overall_score * 100) }}%</td></tr>
    </table>
    {% for note in metrics.accuracy.notes %}<p>{{ note }}</p>{% endfor %}
    {% else %}
    <p>Not enough tickets to evaluate the model.</p>
    {% endif %}

    <h2>Root causes</h2>
    {% if metrics.root_causes %}
    <table>
      <tr><th>Root cause</th><th>Tickets</th><th>Top keywords</th></tr>
      {% for cause in metrics.root_causes %}
      <tr>
        <td>{{ cause.name }}</td>
        <td class="num">{{ cause.tickets }}</td>
        <td>{{ metrics.keywords.get(cause.name, [])[:8]|map(attribute="word")|join(", ") }}</td>
      </tr>
      {% endfor %}
    </table>
    {% else %}
    <p>No root causes found.</p>
    {% endif %}

    <h2>Category / priority heatmap</h2>
    <table>
      <tr><th>Category</th>{% for priority in metrics.priorities %}<th>{{ priority }}</th>{% endfor %}</tr>
      {% for category in metrics.categories %}
      <tr>
        <td>{{ category }}</td>
        {% for priority in metrics.priorities %}<td class="num">{{ metrics.grid[category][priority] }}</td>{% endfor %}
      </tr>
      {% endfor %}
    </table>

    <h2>Operations</h2>
    <table>
      <tr><th>Technician</th><th>Tickets</th></tr>
      {% for row in metrics.technician_workload %}<tr><td>{{ row.name }}</td><td class="num">{{ row.tickets }}</td></tr>{% endfor %}
    </table>
    <table>
      <tr><th>Status</th><th>Tickets</th></tr>
      {% for row in metrics.status_distribution %}<tr><td>{{ row.name }}</td><td class="num">{{ row.tickets }}</td></tr>{% endfor %}
    </table>
    {% if metrics.resolution_times %}
    <p>Average resolution {{ metrics.avg_resolution_hours }}h &middot; first contact {{ metrics.first_contact_rate }}%</p>
    <table>
      <tr><th>Category</th><th>Avg hours</th><th>Tickets</th></tr>
      {% for row in metrics.resolution_times %}<tr><td>{{ row.name }}</td><td class="num">{{ "%.2f"|format(row.avg_hours) }}</td><td class="num">{{ row.tickets }}</td></tr>{% endfor %}
    </table>
    {% endif %}
  </body>
</html>
"""
)


def snapshot_metrics(state: TrainingState) -> Dict[str, Any]:
    """Flatten a snapshot into plain data for templates and JSON."""
    grid: Dict[str, Dict[str, int]] = {category: {} for category in state.categories}
    for cell in state.heatmap:
        grid.setdefault(cell.category, {})[cell.priority] = cell.value
    return {
        "version": state.version,
        "ticket_count": len(state.corpus),
        "trained_at": state.trained_at.strftime("%Y-%m-%d %H:%M:%S UTC"),
        "accuracy": asdict(state.accuracy) if state.accuracy else None,
        "root_causes": [asdict(cause) for cause in state.root_causes],
        "categories": list(state.categories),
        "priorities": list(state.priorities),
        "grid": grid,
        "keywords": {
            cause: [asdict(keyword) for keyword in keywords]
            for cause, keywords in state.keywords.items()
        },
        "technician_workload": [asdict(row) for row in state.technician_workload],
        "status_distribution": [asdict(row) for row in state.status_distribution],
        "resolution_times": [asdict(row) for row in state.resolution_times],
        "avg_resolution_hours": state.avg_resolution_hours,
        "first_contact_rate": state.first_contact_rate,
    }


class SnapshotReportWriter:
    """Persist the read models of a training cycle for offline review."""

    SLA_HEADERS: Sequence[str] = (
        "ticket_no",
        "risk_score",
        "time_remaining",
        "priority",
        "technician",
        "problem_snippet",
    )

    def __init__(self, *, output_directory: Path, report_name: str = "knowledge_base") -> None:
        self.output_directory = output_directory
        self.report_name = report_name
        self.output_directory.mkdir(parents=True, exist_ok=True)

    def write_summary(self, state: TrainingState) -> Path:
        path = self.output_directory / f"{self.report_name}.html"
        LOGGER.info("Writing knowledge base summary to %s", path)
        path.write_text(HTML_TEMPLATE.render(metrics=snapshot_metrics(state)), encoding="utf-8")
        return path

    def write_metrics_json(self, state: TrainingState) -> Path:
        path = self.output_directory / f"{self.report_name}.json"
        LOGGER.info("Writing knowledge base metrics to %s", path)
        path.write_text(json.dumps(snapshot_metrics(state), indent=2), encoding="utf-8")
        return path

    def write_sla_risks(self, entries: Iterable[SlaRiskEntry]) -> Path:
        path = self.output_directory / f"{self.report_name}_sla_risk.csv"
        LOGGER.info("Writing SLA risk list to %s", path)
        with path.open("w", encoding="utf-8", newline="") as handle:
            writer = csv.writer(handle)
            writer.writerow(self.SLA_HEADERS)
            for entry in entries:
                writer.writerow(
                    [
                        entry.ticket_no,
                        f"{entry.risk_score:.3f}",
                        entry.time_remaining,
                        entry.priority or "",
                        entry.technician or "",
                        entry.problem_snippet,
                    ]
                )
        return path

    def write_all(self, state: TrainingState, sla_entries: Iterable[SlaRiskEntry]) -> List[Path]:
        return [
            self.write_summary(state),
            self.write_metrics_json(state),
            self.write_sla_risks(sla_entries),
        ]
