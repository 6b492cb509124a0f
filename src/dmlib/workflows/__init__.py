"""Provisioning workflows built on the REST client, uploader and poller."""

from dmlib.workflows.export import SchemaExporter
from dmlib.workflows.provisioner import DatamodelProvisioner
from dmlib.workflows.steps import StepLog

__all__ = ["DatamodelProvisioner", "SchemaExporter", "StepLog"]
