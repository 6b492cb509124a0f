"""Resource orchestration: datamodel provisioning workflows.

Strictly sequential glue over the REST client, the staged uploader and the
build poller.  Every call waits for its predecessor; identifiers flow
forward (storage path -> dataset connection -> table id, table and column
oids -> relation, datamodel oid -> build, build oid -> poller).

Nothing is cleaned up on failure: the first error aborts the workflow and
any resources already created stay on the server.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from dmlib.api.client import DatamodelsClient
from dmlib.build.poller import BuildPoller
from dmlib.models import PollConfig, PollResult, ProvisionResult, UploadResult
from dmlib.upload.uploader import StagedUploader
from dmlib.workflows import payloads
from dmlib.workflows.steps import StepLog

logger = logging.getLogger(__name__)


class DatamodelProvisioner:
    """Creates CSV-backed datamodels, builds them and waits for the result.

    Usage::

        async with DatamodelsClient(config) as client:
            provisioner = DatamodelProvisioner(
                client, StagedUploader(client), BuildPoller(client)
            )
            result = await provisioner.create_csv_datamodel("assets/demo.csv")
    """

    def __init__(
        self,
        client: DatamodelsClient,
        uploader: StagedUploader,
        poller: BuildPoller,
        steps: StepLog | None = None,
        poll_config: PollConfig | None = None,
        cancel: asyncio.Event | None = None,
    ) -> None:
        self._client = client
        self._uploader = uploader
        self._poller = poller
        self._steps = steps or StepLog()
        self._poll_config = poll_config
        self._cancel = cancel

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    async def create_csv_datamodel(
        self,
        csv_path: str | Path,
        title: str | None = None,
        table_name: str = "Customers",
        columns: list[tuple[str, int]] | None = None,
    ) -> ProvisionResult:
        """Build a datamodel from scratch around one CSV file.

        Uploads the file, creates a CSV dataset and table (hiding the name
        columns behind a computed ``full name`` column), adds a custom
        country-codes dataset/table, links the two on ``country``, runs a
        full build and waits for it.

        Returns:
            :class:`ProvisionResult`; ``result.build.outcome`` may be
            ``failed``.

        Raises:
            BuildTimeoutError: The build did not finish within the poll budget.
        """
        columns = columns or payloads.CUSTOMER_COLUMNS
        steps = self._steps

        upload = await self._upload(csv_path)
        datamodel = await self._create_datamodel(title or payloads.unique_name())
        dm_oid = datamodel["oid"]
        datasets = f"datamodels/{dm_oid}/schema/datasets"

        with steps.step("Creating a CSV dataset") as step:
            csv_dataset = await self._client.post(
                datasets, payloads.csv_dataset(upload, payloads.unique_name())
            )
            step.done(f"New CSV dataset oid: '{csv_dataset['oid']}'")

        with steps.step("Creating CSV table") as step:
            csv_table = await self._client.post(
                f"{datasets}/{csv_dataset['oid']}/tables",
                payloads.csv_table(
                    upload, table_name, columns, description=f"{table_name} table from CSV"
                ),
            )
            step.done(f"New table oid: '{csv_table['oid']}'")

        with steps.step("Modifying CSV table + Creating custom column") as step:
            csv_table = await self._client.patch(
                f"{datasets}/{csv_dataset['oid']}/tables/{csv_table['oid']}",
                {"columns": _with_full_name_column(csv_table["columns"])},
            )
            step.done()

        with steps.step("Creating custom dataset") as step:
            custom_dataset = await self._client.post(
                datasets, payloads.custom_dataset(payloads.unique_name())
            )
            step.done(f"New custom Dataset oid: '{custom_dataset['oid']}'")

        with steps.step("Creating custom table") as step:
            custom_table = await self._client.post(
                f"{datasets}/{custom_dataset['oid']}/tables",
                payloads.custom_table(
                    "custom1", payloads.COUNTRY_CODES_EXPRESSION, description="Custom table"
                ),
            )
            step.done(f"New custom table oid: '{custom_table['oid']}'")

        with steps.step("Linking CSV and custom tables") as step:
            await self._client.post(
                f"datamodels/{dm_oid}/schema/relations",
                payloads.relation(
                    (
                        csv_dataset["oid"],
                        csv_table["oid"],
                        payloads.find_column_oid(csv_table, column_id="country"),
                    ),
                    (
                        custom_dataset["oid"],
                        custom_table["oid"],
                        payloads.find_column_oid(custom_table, column_name="Country"),
                    ),
                ),
            )
            step.done()

        build = await self._build_and_wait(dm_oid)
        return ProvisionResult(
            datamodel_oid=dm_oid,
            datamodel_title=datamodel["title"],
            build=build,
            dataset_oids=[csv_dataset["oid"], custom_dataset["oid"]],
            table_oids=[csv_table["oid"], custom_table["oid"]],
            uploads=[upload],
        )

    async def change_connection(
        self,
        first_csv: str | Path,
        second_csv: str | Path,
        title: str | None = None,
        table_name: str = "Customers",
        columns: list[tuple[str, int]] | None = None,
    ) -> ProvisionResult:
        """Create a CSV datamodel, then repoint its dataset at another file.

        Both files are uploaded first.  The dataset's ``connection`` is
        patched to the second file, and the dependent table's ``id`` is
        updated to the new stored file name (CSV tables are keyed by it)
        before building.
        """
        columns = columns or payloads.CUSTOMER_COLUMNS
        steps = self._steps

        with steps.step("Uploading 2 files") as step:
            first = await self._upload_one(first_csv, step.note)
            second = await self._upload_one(second_csv, step.note)
            step.done()

        datamodel = await self._create_datamodel(title or payloads.unique_name())
        dm_oid = datamodel["oid"]
        datasets = f"datamodels/{dm_oid}/schema/datasets"

        with steps.step("Creating a CSV dataset") as step:
            csv_dataset = await self._client.post(
                datasets, payloads.csv_dataset(first, payloads.unique_name())
            )
            step.done(f"New CSV dataset oid: '{csv_dataset['oid']}'")

        with steps.step("Creating CSV table") as step:
            csv_table = await self._client.post(
                f"{datasets}/{csv_dataset['oid']}/tables",
                payloads.csv_table(
                    first, table_name, columns, description=f"{table_name} table from CSV"
                ),
            )
            step.done(f"New table oid: '{csv_table['oid']}'")

        with steps.step("Modifying dataset connection") as step:
            connection = dict(csv_dataset.get("connection") or {})
            connection.update(payloads.csv_connection(second))
            csv_dataset = await self._client.patch(
                f"{datasets}/{csv_dataset['oid']}", {"connection": connection}
            )
            step.done()

        with steps.step("Updating CSV table with new id") as step:
            csv_table = await self._client.patch(
                f"{datasets}/{csv_dataset['oid']}/tables/{csv_table['oid']}",
                {"id": second.storage_name},
            )
            step.done()

        build = await self._build_and_wait(dm_oid)
        return ProvisionResult(
            datamodel_oid=dm_oid,
            datamodel_title=datamodel["title"],
            build=build,
            dataset_oids=[csv_dataset["oid"]],
            table_oids=[csv_table["oid"]],
            uploads=[first, second],
        )

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    async def _upload(self, csv_path: str | Path) -> UploadResult:
        with self._steps.step(f"Uploading file {csv_path}") as step:
            upload = await self._uploader.upload(csv_path, cancel=self._cancel)
            step.done(f"Uploaded file path: {upload.storage_path}")
        return upload

    async def _upload_one(
        self, csv_path: str | Path, note: Callable[[str], None]
    ) -> UploadResult:
        note(f"Uploading file {csv_path}")
        upload = await self._uploader.upload(csv_path, cancel=self._cancel)
        note(f"Uploaded file {csv_path} | Uploaded file path: {upload.storage_path}")
        return upload

    async def _create_datamodel(self, title: str) -> dict[str, Any]:
        with self._steps.step("Creating blank Datamodel") as step:
            datamodel = await self._client.post("datamodels", payloads.datamodel(title))
            step.done(
                f"New model title: '{datamodel['title']}', oid '{datamodel['oid']}'"
            )
        return datamodel

    async def _build_and_wait(self, dm_oid: str) -> PollResult:
        with self._steps.step("Initiating full build") as step:
            build_task = await self._client.post("builds", payloads.build_request(dm_oid))
            step.done(f"Build task oid: '{build_task['oid']}'")

        with self._steps.step("Wait for build to complete") as step:
            result = await self._poller.wait_for_completion(
                build_task["oid"], config=self._poll_config, cancel=self._cancel
            )
            result.raise_for_timeout()
            step.done(f"Build outcome: '{result.outcome.value}'")

        if not result.succeeded:
            logger.warning("Build %s of datamodel %s failed", result.build_id, dm_oid)
        return result


def _with_full_name_column(columns: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Hide the first/last name columns and append a computed full name."""
    updated = [
        {**col, "hidden": True} if col.get("id") in ("first name", "last name") else col
        for col in columns
    ]
    updated.append(payloads.custom_column("full name", payloads.FULL_NAME_EXPRESSION))
    return updated
