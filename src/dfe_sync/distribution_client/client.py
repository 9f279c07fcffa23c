"""
Distribution service (Distribuição DF-e) client implementation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional
import logging

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..errors import ConfigurationError, ServiceRejected, TransportError
from ..parsers.codec import decode_document
from ..schemas.access_key import normalize_nsu, require_access_key, require_nsu
from ..schemas.documents import RawDocument

if TYPE_CHECKING:
    from ..services.context import LocationContext

logger = logging.getLogger(__name__)


# cStat values consumed by the engine
STATUS_NO_DOCUMENTS = "137"
STATUS_CONSUMED_TOO_SOON = "656"
STATUS_DOCUMENTS_FOUND = "138"

NO_NEW_DOCUMENT_CODES = frozenset({STATUS_NO_DOCUMENTS, STATUS_CONSUMED_TOO_SOON})

# Gateway errorCode values meaning the channel itself is unusable
CHANNEL_ERROR_CODES = frozenset({"certificate_error", "certificate_expired", "auth_error"})


class BatchOutcome(str, Enum):
    """Interpreted outcome of a distribution request."""

    SUCCESS = "SUCCESS"
    NO_NEW_DOCUMENTS = "NO_NEW_DOCUMENTS"


@dataclass
class BatchResult:
    """Result of one distribution request."""

    outcome: BatchOutcome
    status_code: str
    status_text: str
    ult_nsu: Optional[str] = None
    max_nsu: Optional[str] = None
    documents: list[RawDocument] = field(default_factory=list)

    @property
    def has_documents(self) -> bool:
        return self.outcome == BatchOutcome.SUCCESS and bool(self.documents)


def interpret_status(code: Any, text: str = "") -> BatchOutcome:
    """
    Map the service's cStat to an outcome.

    Raises:
        ServiceRejected: any code other than 137/656/138
    """
    code = str(code or "").strip()
    if code in NO_NEW_DOCUMENT_CODES:
        return BatchOutcome.NO_NEW_DOCUMENTS
    if code == STATUS_DOCUMENTS_FOUND:
        return BatchOutcome.SUCCESS
    raise ServiceRejected(code or "?", text)


class DistributionClient:
    """
    Client for the NSU distribution service.

    Every request is issued on behalf of one location and presents that
    location's client certificate. The client is stateless with respect to
    cursors: it never reads or writes the cursor store.

    Features:
    - Incremental fetch since an NSU
    - Point lookup by NSU or by access key
    - Automatic retry with backoff for transient HTTP failures
    """

    DEFAULT_TIMEOUT = 60

    def __init__(
        self,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
    ):
        """
        Initialize distribution client.

        Args:
            timeout: Request timeout in seconds
            max_retries: Maximum retry attempts for transient failures
            backoff_factor: Backoff factor for retries
        """
        self.timeout = timeout

        self.session = requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "Content-Type": "application/json",
        })

        # 500 is excluded: the gateway uses it for classified errors
        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=backoff_factor,
            status_forcelist=[429, 502, 503, 504],
            allowed_methods=["POST"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def _request(self, ctx: "LocationContext", body: dict[str, Any]) -> dict[str, Any]:
        """POST a request on the location's channel with error handling."""
        channel = ctx.channel
        payload = {
            **body,
            "location": channel.name,
            "cnpj": channel.cnpj,
            "cUFAutor": channel.uf_code,
            "tpAmb": channel.environment,
        }

        try:
            response = self.session.post(
                channel.gateway_url,
                json=payload,
                timeout=self.timeout,
                cert=channel.client_cert(),
            )
        except requests.exceptions.SSLError as e:
            raise TransportError(f"TLS failure talking to {channel.gateway_url}: {e}")
        except requests.exceptions.ConnectionError as e:
            raise TransportError(f"Failed to connect to {channel.gateway_url}: {e}")
        except requests.exceptions.Timeout as e:
            raise TransportError(f"Request to distribution service timed out: {e}")
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Request failed: {e}")

        try:
            data = response.json()
        except ValueError:
            data = None

        if not response.ok:
            error = data if isinstance(data, dict) else {}
            message = error.get("error") or error.get("details") or f"HTTP {response.status_code}"
            if error.get("errorCode") in CHANNEL_ERROR_CODES:
                raise ConfigurationError(f"Location '{channel.name}': {message}")
            raise TransportError(f"Gateway error {response.status_code}: {message}")

        if not isinstance(data, dict):
            raise TransportError("Distribution service returned a non-JSON response")
        return data

    def _to_result(self, data: dict[str, Any]) -> BatchResult:
        status_code = str(data.get("cStat") or "").strip()
        status_text = str(data.get("xMotivo") or "")
        outcome = interpret_status(status_code, status_text)

        documents: list[RawDocument] = []
        if outcome == BatchOutcome.SUCCESS:
            documents = [decode_document(doc) for doc in data.get("documents") or []]

        return BatchResult(
            outcome=outcome,
            status_code=status_code,
            status_text=status_text,
            ult_nsu=normalize_nsu(data.get("ultNSU")) if data.get("ultNSU") else None,
            max_nsu=normalize_nsu(data.get("maxNSU")) if data.get("maxNSU") else None,
            documents=documents,
        )

    def fetch_since(self, ctx: "LocationContext", last_nsu: Optional[str]) -> BatchResult:
        """
        Fetch the next batch after last_nsu.

        Non-numeric or empty cursors start from the beginning of the stream.
        """
        since = normalize_nsu(last_nsu)
        logger.debug(f"[{ctx.name}] distribution fetch since NSU {since}")
        return self._to_result(self._request(ctx, {"action": "sync", "ultNSU": since}))

    def fetch_by_nsu(self, ctx: "LocationContext", nsu: str) -> BatchResult:
        """
        Point lookup of one distribution unit.

        Raises:
            InvalidArgument: nsu is empty or non-numeric
        """
        nsu = require_nsu(nsu)
        logger.debug(f"[{ctx.name}] distribution lookup NSU {nsu}")
        return self._to_result(self._request(ctx, {"action": "consultaNSU", "nsu": nsu}))

    def fetch_by_access_key(self, ctx: "LocationContext", access_key: str) -> BatchResult:
        """
        Point lookup by access key.

        Raises:
            InvalidArgument: key does not have 44 digits
        """
        key = require_access_key(access_key)
        logger.debug(f"[{ctx.name}] distribution lookup key {key}")
        return self._to_result(self._request(ctx, {"action": "consultaChave", "chave": key}))
