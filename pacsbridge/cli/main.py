#!/usr/bin/env python3
"""PACS Bridge CLI - operator utility for checking, querying and retrieving from PACS nodes."""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from pydicom import Dataset

from pacsbridge.exceptions import PacsBridgeError
from pacsbridge.services.dicom.receiver import StorageReceiver
from pacsbridge.services.pacs.registry import InMemoryPacsRegistry
from pacsbridge.services.pacs.router import PacsRouter
from pacsbridge.settings import settings
from pacsbridge.utils.logger import logger

SETTINGS_TEMPLATE = """# PACS Bridge Configuration File

# Local DICOM identity
calling_aet = "PACSBRIDGE"

# Association timeouts (seconds)
connection_timeout = 10.0
acse_timeout = 30.0
dimse_timeout = 30.0
network_timeout = 60.0

# Storage receiver for C-MOVE sub-operations
receiver_enabled = false
receiver_port = 11112

# Finished retrieval jobs are forgotten after this many minutes
retrieval_retention_minutes = 60

[[pacs]]
id = "orthanc"
name = "Local Orthanc"
pacs_type = "LEGACY"
host = "127.0.0.1"
port = 4242
ae_title = "ORTHANC"

[[pacs]]
id = "orthanc-web"
name = "Local Orthanc (DICOMweb)"
pacs_type = "DICOMWEB"
host = "127.0.0.1"
port = 8042
ae_title = "ORTHANC"
qido_rs_url = "http://127.0.0.1:8042/dicom-web"
wado_rs_url = "http://127.0.0.1:8042/dicom-web"
"""


def init_project(path: str) -> None:
    """Write an example settings.toml into the given directory."""
    project_path = Path(path).resolve()
    project_path.mkdir(parents=True, exist_ok=True)

    settings_file = project_path / "settings.toml"
    if settings_file.exists():
        logger.warning(f"Settings file already exists: {settings_file}")
        return
    settings_file.write_text(SETTINGS_TEMPLATE)
    logger.info(f"Created settings file: {settings_file}")


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def _log_received(ds: Dataset) -> None:
    logger.info(f"Received {ds.SOPClassUID} instance {ds.SOPInstanceUID}")


async def run_command(args: argparse.Namespace, router: PacsRouter) -> None:
    """Execute one router command and print its result as JSON."""
    try:
        match args.command:
            case "echo":
                result = await router.test_connection(args.pacs_id)
                _print_json(result.model_dump(mode="json"))
            case "studies":
                filters = {
                    "PatientID": args.patient_id,
                    "PatientName": args.patient_name,
                    "StudyDate": args.study_date,
                    "ModalitiesInStudy": args.modality,
                    "AccessionNumber": args.accession_number,
                }
                studies = await router.query_studies(
                    args.pacs_id, {k: v for k, v in filters.items() if v}
                )
                _print_json([dict(s.items()) for s in studies])
            case "series":
                series = await router.query_series(args.pacs_id, args.study_uid)
                _print_json([dict(s.items()) for s in series])
            case "instances":
                instances = await router.query_instances(
                    args.pacs_id, args.study_uid, args.series_uid
                )
                _print_json([dict(i.items()) for i in instances])
            case "retrieve":
                if args.sop_uid:
                    move = await router.retrieve_instance(
                        args.pacs_id,
                        args.study_uid,
                        args.series_uid,
                        args.sop_uid,
                        args.destination,
                    )
                elif args.series_uid:
                    move = await router.retrieve_series(
                        args.pacs_id, args.study_uid, args.series_uid, args.destination
                    )
                else:
                    move = await router.retrieve_study(
                        args.pacs_id, args.study_uid, args.destination
                    )
                _print_json(move.model_dump(mode="json"))
    finally:
        await router.close()


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="pacsbridge", description="PACS Bridge CLI - query and retrieve from PACS nodes"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init command
    init_parser = subparsers.add_parser("init", help="Create an example settings.toml")
    init_parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Directory for the settings file (default: current directory)",
    )

    # list command
    subparsers.add_parser("list", help="List configured PACS nodes")

    # echo command
    echo_parser = subparsers.add_parser("echo", help="Test the connection to a PACS")
    echo_parser.add_argument("pacs_id", help="PACS identifier")

    # studies command
    studies_parser = subparsers.add_parser("studies", help="Search studies")
    studies_parser.add_argument("pacs_id", help="PACS identifier")
    studies_parser.add_argument("--patient-id", default=None)
    studies_parser.add_argument("--patient-name", default=None)
    studies_parser.add_argument("--study-date", default=None, help="YYYYMMDD or range")
    studies_parser.add_argument("--modality", default=None)
    studies_parser.add_argument("--accession-number", default=None)

    # series command
    series_parser = subparsers.add_parser("series", help="List the series of a study")
    series_parser.add_argument("pacs_id", help="PACS identifier")
    series_parser.add_argument("study_uid", help="Study Instance UID")

    # instances command
    instances_parser = subparsers.add_parser("instances", help="List the instances of a series")
    instances_parser.add_argument("pacs_id", help="PACS identifier")
    instances_parser.add_argument("study_uid", help="Study Instance UID")
    instances_parser.add_argument("series_uid", help="Series Instance UID")

    # retrieve command
    retrieve_parser = subparsers.add_parser("retrieve", help="C-MOVE a study, series or instance")
    retrieve_parser.add_argument("pacs_id", help="PACS identifier")
    retrieve_parser.add_argument("study_uid", help="Study Instance UID")
    retrieve_parser.add_argument("--series-uid", default=None, help="Series Instance UID")
    retrieve_parser.add_argument(
        "--sop-uid", default=None, help="SOP Instance UID (requires --series-uid)"
    )
    retrieve_parser.add_argument(
        "--destination", default=None, help="Destination AE title (default: calling AE title)"
    )
    retrieve_parser.add_argument(
        "--receive",
        action="store_true",
        help="Run the storage receiver while the move is in progress",
    )

    args = parser.parse_args()

    if args.command == "init":
        init_project(args.path)
        return
    if args.command is None:
        parser.print_help()
        sys.exit(1)

    try:
        registry = InMemoryPacsRegistry.from_settings()
    except PacsBridgeError as e:
        logger.error(f"Invalid PACS configuration: {e}")
        sys.exit(1)

    if args.command == "list":
        _print_json([node.model_dump(mode="json") for node in registry.list_all()])
        return

    receiver: StorageReceiver | None = None
    if args.command == "retrieve" and (args.receive or settings.receiver_enabled):
        receiver = StorageReceiver(
            ae_title=settings.calling_aet,
            host=settings.receiver_host,
            port=settings.receiver_port,
            on_instance=_log_received,
            max_pdu=settings.max_pdu,
        )
        receiver.start()

    try:
        asyncio.run(run_command(args, PacsRouter(registry)))
    except PacsBridgeError as e:
        logger.error(str(e))
        sys.exit(1)
    finally:
        if receiver is not None:
            receiver.stop()


if __name__ == "__main__":
    main()
