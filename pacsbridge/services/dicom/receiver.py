"""C-STORE SCP receiving the instances a C-MOVE sends to the local AE."""

from collections.abc import Callable
from typing import Any

from pydicom import Dataset
from pynetdicom import AE, evt  # type: ignore[import-not-found]
from pynetdicom.transport import ThreadedAssociationServer  # type: ignore[import-not-found]

from pacsbridge.services.dicom.association import build_storage_contexts
from pacsbridge.utils.logger import logger

InstanceCallback = Callable[[Dataset], None]


class StorageHandler:
    """Handler for C-STORE events, passing each dataset to a callback."""

    def __init__(self, on_instance: InstanceCallback):
        """Initialize storage handler.

        Args:
            on_instance: Called with every received dataset (file meta attached)
        """
        self.on_instance = on_instance
        self.received = 0

    def handle_store(self, event: evt.Event) -> int:
        """Handle C-STORE request.

        Args:
            event: pynetdicom event object

        Returns:
            Status code (0x0000 for success)
        """
        try:
            ds = event.dataset
            ds.file_meta = event.file_meta
            self.on_instance(ds)
        except Exception as e:
            logger.error(f"Error handling C-STORE: {e}")
            return 0xC000  # Failure

        self.received += 1
        logger.debug(f"Received instance {ds.SOPInstanceUID} (total: {self.received})")
        return 0x0000

    def handle_echo(self, event: evt.Event) -> int:
        """Answer C-ECHO requests."""
        return 0x0000


class StorageReceiver:
    """Background C-STORE SCP listening on the local AE title."""

    def __init__(
        self,
        ae_title: str,
        host: str,
        port: int,
        on_instance: InstanceCallback,
        max_pdu: int = 16384,
    ):
        self.ae_title = ae_title
        self.host = host
        self.port = port
        self.max_pdu = max_pdu
        self.handler = StorageHandler(on_instance)
        self._server: ThreadedAssociationServer | None = None

    @property
    def is_running(self) -> bool:
        return self._server is not None

    def _create_ae(self) -> AE:
        ae = AE(ae_title=self.ae_title)
        ae.maximum_pdu_size = self.max_pdu
        ae.supported_contexts = build_storage_contexts()
        return ae

    def start(self) -> None:
        """Start listening in a background thread. Does nothing if already running."""
        if self._server is not None:
            return
        handlers: list[tuple[Any, Any]] = [
            (evt.EVT_C_STORE, self.handler.handle_store),
            (evt.EVT_C_ECHO, self.handler.handle_echo),
        ]
        self._server = self._create_ae().start_server(
            (self.host, self.port), block=False, evt_handlers=handlers
        )
        logger.info(f"Storage receiver {self.ae_title} listening on {self.host}:{self.port}")

    def stop(self) -> None:
        """Stop the server and close its associations."""
        if self._server is None:
            return
        self._server.shutdown()
        self._server = None
        logger.info(f"Storage receiver {self.ae_title} stopped")
