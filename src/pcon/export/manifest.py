"""Consolidation manifest written next to the consolidated project."""

import json
from datetime import datetime, timezone
from pathlib import Path

from pcon import __version__
from pcon.models.plan import EntryOutcome, OperationPlan

MANIFEST_NAME = "consolidation_manifest.json"


def generate_manifest(
    project_path: Path,
    plan: OperationPlan,
    outcomes: list[EntryOutcome],
) -> dict:
    """Build the manifest as a JSON-serializable dict."""
    entries = []
    for entry in plan.entries:
        outcome = outcomes[entry.index] if entry.index < len(outcomes) else None
        span = entry.span
        entries.append(
            {
                "media_id": entry.media_id,
                "role": entry.role.value,
                "source": str(entry.source_path),
                "destination": str(
                    outcome.output_path if outcome and outcome.output_path else entry.destination
                ),
                "action": (outcome.action or entry.action).value if outcome else entry.action.value,
                "time_range_seconds": list(span.to_seconds()) if span is not None else None,
                "clip_count": len(entry.clip_ids),
                "outcome": outcome.status.value if outcome else "pending",
                "message": outcome.message if outcome else None,
                "output_bytes": outcome.output_bytes if outcome else 0,
            }
        )

    return {
        "version": __version__,
        "created_at": datetime.now(timezone.utc).isoformat(),
        "original_project": str(project_path),
        "options": plan.options.model_dump(mode="json"),
        "warnings": list(plan.warnings),
        "entries": entries,
    }


def save_manifest(
    project_path: Path,
    plan: OperationPlan,
    outcomes: list[EntryOutcome],
    output_path: Path | None = None,
) -> Path:
    """Write the manifest to ``<output root>/consolidation_manifest.json``."""
    output_path = Path(output_path or plan.output_root / MANIFEST_NAME)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    manifest = generate_manifest(project_path, plan, outcomes)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(manifest, f, ensure_ascii=False, indent=2)
    return output_path
