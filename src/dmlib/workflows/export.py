"""Export every datamodel schema on the server as a ``.smodel`` file."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

from dmlib.api.client import DatamodelsClient
from dmlib.workflows.steps import StepLog

logger = logging.getLogger(__name__)

SCHEMA_EXPORT_TYPE = "schema-latest"

_UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


def smodel_filename(title: str) -> str:
    """``<title>.smodel`` with path separators and reserved characters replaced."""
    safe = _UNSAFE_CHARS.sub("_", title).strip() or "untitled"
    return f"{safe}.smodel"


class SchemaExporter:
    """Downloads datamodel schemas into a local backup folder."""

    def __init__(
        self,
        client: DatamodelsClient,
        target_dir: Path,
        steps: StepLog | None = None,
    ) -> None:
        self._client = client
        self.target_dir = Path(target_dir)
        self._steps = steps or StepLog()

    async def export_all(self) -> list[Path]:
        """Export all datamodels, one file per model.

        Returns:
            Paths of the written files, in server listing order.
        """
        steps = self._steps

        with steps.step(f"Create folder {self.target_dir} if it didn't exist") as step:
            self.target_dir.mkdir(parents=True, exist_ok=True)
            step.done()

        with steps.step("Getting all datamodels") as step:
            datamodels = await self._client.get(
                "datamodels/schema", params={"fields": "oid,title"}
            ) or []
            step.done(f"found {len(datamodels)} models")

        written: list[Path] = []
        with steps.step("Exporting all datamodels") as step:
            for item in datamodels:
                step.note(f"Exporting datamodel \"{item['title']}\"")
                written.append(await self.export_one(item))
            step.done()
        return written

    async def export_one(self, datamodel: dict[str, Any]) -> Path:
        """Export one datamodel (a dict with ``oid`` and ``title``)."""
        schema = await self._client.get(
            "datamodel-exports/schema",
            params={"datamodelId": datamodel["oid"], "type": SCHEMA_EXPORT_TYPE},
        )
        path = self.target_dir / smodel_filename(datamodel["title"])
        path.write_text(json.dumps(schema), encoding="utf-8")
        logger.info("Saved datamodel %r as %s", datamodel["title"], path)
        return path
