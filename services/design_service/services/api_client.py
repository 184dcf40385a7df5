"""
Design editor GraphQL API client.

Provides async methods for:
- Testing a credential and reading the domain it belongs to
- Fetching design previews and design info
- Requesting and polling high-resolution renders
- Locking designs after purchase
- Building editor deep links (no network)

Every call is a single POST with a bounded timeout and no retries. Failures
come back as an ``ApiResult`` with an ``ApiErrorKind``; nothing raises
across this module's boundary.
"""

import enum
from typing import Any, Optional

import httpx
from libs.common.config import get_settings
from libs.common.logging import get_logger
from pydantic import BaseModel
from services.design_service.models import (
    EditorLinkMode,
    LockMode,
    ProductDesignSettings,
)
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

# The editor derives a domain id from the leading characters of its API keys
DOMAIN_ID_LENGTH = 9

UNAUTHORIZED_CODES = {"UNAUTHENTICATED", "UNAUTHORIZED", "FORBIDDEN"}
NOT_FOUND_CODES = {"NOT_FOUND"}


class ApiErrorKind(str, enum.Enum):
    TRANSPORT = "transport"
    UNAUTHORIZED = "unauthorized"
    PROTOCOL_ERROR = "protocol_error"
    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"
    UNKNOWN = "unknown"


class ImageStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    READY = "ready"
    FAILED = "failed"


# Remote status vocabulary -> ImageStatus
_IMAGE_STATUS_ALIASES = {
    "PENDING": ImageStatus.PENDING,
    "QUEUED": ImageStatus.PENDING,
    "IN_PROGRESS": ImageStatus.IN_PROGRESS,
    "PROCESSING": ImageStatus.IN_PROGRESS,
    "READY": ImageStatus.READY,
    "COMPLETED": ImageStatus.READY,
    "DONE": ImageStatus.READY,
    "FAILED": ImageStatus.FAILED,
    "ERROR": ImageStatus.FAILED,
}


class ApiResult(BaseModel):
    """Uniform outcome of a remote call."""

    ok: bool
    data: Optional[dict[str, Any]] = None
    error_kind: Optional[ApiErrorKind] = None
    message: Optional[str] = None
    http_status: Optional[int] = None

    @classmethod
    def success(cls, data: dict[str, Any], http_status: Optional[int] = 200):
        return cls(ok=True, data=data, http_status=http_status)

    @classmethod
    def failure(
        cls,
        error_kind: ApiErrorKind,
        message: str,
        http_status: Optional[int] = None,
    ):
        return cls(
            ok=False, error_kind=error_kind, message=message, http_status=http_status
        )


# ============================================================================
# GRAPHQL DOCUMENTS
# ============================================================================

DOMAIN_QUERY = """
query {
  domain {
    id
    name
  }
}
"""

ASSET_PREVIEW_QUERY = """
query GetAsset($serial: String!, $size: String) {
  asset(serial: $serial, size: $size) {
    serial
    previewUrl
    thumbnailUrl
  }
}
"""

ASSET_INFO_QUERY = """
query GetAsset($serial: String!) {
  asset(serial: $serial) {
    serial
    locked
    previewUrl
    thumbnailUrl
  }
}
"""

REQUEST_IMAGE_MUTATION = """
mutation RequestImage($serial: String!, $width: Int!, $height: Int!, $format: String!, $dpi: Int!) {
  requestImage(serial: $serial, width: $width, height: $height, format: $format, dpi: $dpi) {
    accepted
  }
}
"""

IMAGE_STATUS_QUERY = """
query ImageStatus($serial: String!, $width: Int!, $height: Int!, $format: String!, $dpi: Int!) {
  imageStatus(serial: $serial, width: $width, height: $height, format: $format, dpi: $dpi) {
    status
    progress
    url
    message
  }
}
"""

LOCK_ASSET_MUTATION = """
mutation LockAsset($serial: String!) {
  lockAsset(serial: $serial) {
    serial
    locked
  }
}
"""


# ============================================================================
# CLIENT
# ============================================================================


class DesignApiClient:
    """Async client for the design editor's GraphQL API."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        remote_lock_enabled: Optional[bool] = None,
    ):
        settings = get_settings()
        self.api_key = api_key or ""
        self.api_url = api_url or settings.DESIGN_API_URL
        self.timeout = timeout if timeout is not None else settings.DESIGN_API_TIMEOUT
        self.remote_lock_enabled = (
            settings.DESIGN_REMOTE_LOCK_ENABLED
            if remote_lock_enabled is None
            else remote_lock_enabled
        )

    async def _execute(
        self, query: str, variables: Optional[dict[str, Any]] = None
    ) -> ApiResult:
        """POST one GraphQL document and classify the response."""
        if not self.api_key:
            return ApiResult.failure(ApiErrorKind.INVALID_INPUT, "API key is required")

        body: dict[str, Any] = {"query": query}
        if variables:
            body["variables"] = variables
        headers = {
            "x-api-key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    "POST", self.api_url, headers=headers, json=body
                )
        except httpx.TimeoutException as e:
            logger.warning("Design API request timed out: %s", e)
            return ApiResult.failure(
                ApiErrorKind.TRANSPORT, f"Request timed out: {e}"
            )
        except httpx.RequestError as e:
            logger.warning("Design API transport error: %s", e)
            return ApiResult.failure(ApiErrorKind.TRANSPORT, str(e) or repr(e))

        status_code = response.status_code
        try:
            payload = response.json()
        except ValueError:
            payload = None

        logger.debug("Design API response status=%s body=%s", status_code, payload)

        if isinstance(payload, dict) and payload.get("errors"):
            return _classify_graphql_errors(payload["errors"], status_code)

        if status_code == 200 and isinstance(payload, dict) and "data" in payload:
            return ApiResult.success(payload["data"] or {}, status_code)

        return _classify_http_failure(status_code, payload, response)

    # =========================================================================
    # Domain
    # =========================================================================

    async def test_connection(self) -> ApiResult:
        """Verify the credential and read the domain it belongs to. Read-only."""
        result = await self._execute(DOMAIN_QUERY)
        if not result.ok:
            return result

        domain = (result.data or {}).get("domain")
        if not domain:
            return ApiResult.failure(
                ApiErrorKind.PROTOCOL_ERROR,
                "Failed to connect to API",
                result.http_status,
            )
        return ApiResult.success(
            {
                "domain_id": domain.get("id"),
                "domain_name": domain.get("name") or "Unknown Domain",
            },
            result.http_status,
        )

    # =========================================================================
    # Assets
    # =========================================================================

    async def get_design_preview(
        self, serial: str, size_hint: str = "medium"
    ) -> ApiResult:
        """
        Fetch preview and thumbnail URLs for a design.

        Args:
            serial: Design serial issued by the editor
            size_hint: 'thumbnail', 'small', 'medium' or 'large'

        Returns:
            ApiResult with {serial, preview_url, thumbnail_url}; NOT_FOUND when
            the serial is unknown remotely.
        """
        if not serial:
            return ApiResult.failure(
                ApiErrorKind.INVALID_INPUT, "Design serial is required"
            )

        result = await self._execute(
            ASSET_PREVIEW_QUERY, {"serial": serial, "size": size_hint}
        )
        if not result.ok:
            return result

        asset = (result.data or {}).get("asset")
        if not asset:
            return ApiResult.failure(
                ApiErrorKind.NOT_FOUND,
                f"Design {serial} not found",
                result.http_status,
            )
        return ApiResult.success(
            {
                "serial": asset.get("serial") or serial,
                "preview_url": asset.get("previewUrl") or None,
                "thumbnail_url": asset.get("thumbnailUrl") or None,
            },
            result.http_status,
        )

    async def get_design_info(self, serial: str) -> ApiResult:
        """Fetch the remote view of a design, including its locked flag."""
        if not serial:
            return ApiResult.failure(
                ApiErrorKind.INVALID_INPUT, "Design serial is required"
            )

        result = await self._execute(ASSET_INFO_QUERY, {"serial": serial})
        if not result.ok:
            return result

        asset = (result.data or {}).get("asset")
        if not asset:
            return ApiResult.failure(
                ApiErrorKind.NOT_FOUND,
                f"Design {serial} not found",
                result.http_status,
            )
        return ApiResult.success(
            {
                "serial": asset.get("serial") or serial,
                "locked": bool(asset.get("locked", False)),
                "preview_url": asset.get("previewUrl") or None,
                "thumbnail_url": asset.get("thumbnailUrl") or None,
            },
            result.http_status,
        )

    # =========================================================================
    # Renders
    # =========================================================================

    async def request_high_res_image(
        self, serial: str, width: int, height: int, format: str, dpi: int
    ) -> ApiResult:
        """Ask the editor to render a print image.

        Rendering happens out of band; success only means the request was
        accepted. Use poll_image_status() to follow it.
        """
        if not serial:
            return ApiResult.failure(
                ApiErrorKind.INVALID_INPUT, "Design serial is required"
            )

        result = await self._execute(
            REQUEST_IMAGE_MUTATION,
            _render_variables(serial, width, height, format, dpi),
        )
        if not result.ok:
            return result

        request = (result.data or {}).get("requestImage")
        if not request:
            return ApiResult.failure(
                ApiErrorKind.NOT_FOUND,
                f"Design {serial} not found",
                result.http_status,
            )
        if not request.get("accepted", False):
            return ApiResult.failure(
                ApiErrorKind.PROTOCOL_ERROR,
                "Render request was not accepted",
                result.http_status,
            )
        return ApiResult.success({"accepted": True, "serial": serial}, result.http_status)

    async def poll_image_status(
        self, serial: str, width: int, height: int, format: str, dpi: int
    ) -> ApiResult:
        """Read the state of a previously requested render.

        ``data["status"]`` is an ImageStatus; ``progress`` accompanies
        IN_PROGRESS and ``url`` accompanies READY.
        """
        if not serial:
            return ApiResult.failure(
                ApiErrorKind.INVALID_INPUT, "Design serial is required"
            )

        result = await self._execute(
            IMAGE_STATUS_QUERY,
            _render_variables(serial, width, height, format, dpi),
        )
        if not result.ok:
            return result

        image = (result.data or {}).get("imageStatus")
        if not image:
            return ApiResult.failure(
                ApiErrorKind.NOT_FOUND,
                f"No render requested for design {serial}",
                result.http_status,
            )

        raw_status = str(image.get("status") or "").upper()
        status = _IMAGE_STATUS_ALIASES.get(raw_status)
        if status is None:
            return ApiResult.failure(
                ApiErrorKind.PROTOCOL_ERROR,
                f"Unrecognised render status {raw_status!r}",
                result.http_status,
            )

        data: dict[str, Any] = {"serial": serial, "status": status}
        if status == ImageStatus.IN_PROGRESS:
            progress = _parse_progress(image.get("progress"))
            if progress is None:
                return ApiResult.failure(
                    ApiErrorKind.PROTOCOL_ERROR,
                    f"Unreadable render progress {image.get('progress')!r}",
                    result.http_status,
                )
            data["progress"] = progress
        elif status == ImageStatus.READY:
            data["url"] = image.get("url")
        elif status == ImageStatus.FAILED:
            data["message"] = image.get("message")
        return ApiResult.success(data, result.http_status)

    # =========================================================================
    # Locking
    # =========================================================================

    async def lock_design(self, serial: str) -> ApiResult:
        """
        Mark a design non-editable.

        When remote locking is disabled for this deployment no request is
        sent; the call succeeds with mode LOCAL_ONLY and the lock lives only in
        our own order records.
        """
        if not serial:
            return ApiResult.failure(
                ApiErrorKind.INVALID_INPUT, "Design serial is required"
            )

        if not self.remote_lock_enabled:
            logger.warning(
                "Remote lock unavailable; design %s locked local-only", serial
            )
            return ApiResult.success(
                {"serial": serial, "locked": True, "mode": LockMode.LOCAL_ONLY},
                http_status=None,
            )

        result = await self._execute(LOCK_ASSET_MUTATION, {"serial": serial})
        if not result.ok:
            return result

        locked = (result.data or {}).get("lockAsset")
        if not locked:
            return ApiResult.failure(
                ApiErrorKind.NOT_FOUND,
                f"Design {serial} not found",
                result.http_status,
            )
        logger.info("Design %s locked remotely", serial)
        return ApiResult.success(
            {"serial": serial, "locked": True, "mode": LockMode.REMOTE},
            result.http_status,
        )

    # =========================================================================
    # Editor links
    # =========================================================================

    def build_editor_url(
        self,
        domain_id: str,
        serial: str,
        extra_params: Optional[dict[str, Any]] = None,
        *,
        mode: EditorLinkMode = EditorLinkMode.START,
        return_url: Optional[str] = None,
    ) -> str:
        """Build the editor deep link. Pure; no network."""
        return build_editor_url(
            domain_id, serial, extra_params, mode=mode, return_url=return_url
        )


# ============================================================================
# HELPERS
# ============================================================================


def build_editor_url(
    domain_id: str,
    serial: str,
    extra_params: Optional[dict[str, Any]] = None,
    *,
    mode: EditorLinkMode = EditorLinkMode.START,
    return_url: Optional[str] = None,
) -> str:
    """
    Build an editor deep link from the configured base URL.

    START puts ``serial`` under the template parameter; EDIT puts it under
    the edit-serial parameter so the editor opens the existing design.
    Parameters keep insertion order and None values are dropped, so equal
    inputs always give the same URL.
    """
    settings = get_settings()
    serial_param = (
        settings.DESIGN_EDITOR_EDIT_SERIAL_PARAM
        if mode == EditorLinkMode.EDIT
        else settings.DESIGN_EDITOR_TEMPLATE_PARAM
    )

    params: dict[str, str] = {
        settings.DESIGN_EDITOR_DOMAIN_PARAM: str(domain_id),
        serial_param: str(serial),
    }
    for key, value in (extra_params or {}).items():
        if value is not None and key not in params:
            params[key] = str(value)
    params[settings.DESIGN_EDITOR_RETURN_PARAM] = return_url or settings.DESIGN_RETURN_URL

    return str(httpx.URL(settings.DESIGN_EDITOR_BASE_URL).copy_merge_params(params))


def domain_id_for_key(api_key: Optional[str]) -> str:
    """Domain id the editor encodes in the first characters of an API key."""
    return (api_key or "")[:DOMAIN_ID_LENGTH]


def get_api_key_for_domain(domain_id: Optional[str]) -> Optional[str]:
    """Find the configured credential for a domain id."""
    if not domain_id:
        return None
    for api_key in get_settings().DESIGN_API_KEYS:
        if api_key and domain_id_for_key(api_key) == domain_id:
            return api_key
    return None


async def get_client_for_product(
    db: AsyncSession, product_id: str
) -> Optional[DesignApiClient]:
    """Client bound to the product's domain credential, or None if unusable."""
    product = await db.get(ProductDesignSettings, product_id)
    if not product or not product.domain_id:
        return None
    api_key = get_api_key_for_domain(product.domain_id)
    if not api_key:
        logger.warning(
            "No API credential configured for domain %s (product %s)",
            product.domain_id,
            product_id,
        )
        return None
    return DesignApiClient(api_key)


def _render_variables(
    serial: str, width: int, height: int, format: str, dpi: int
) -> dict[str, Any]:
    return {
        "serial": serial,
        "width": int(width),
        "height": int(height),
        "format": format,
        "dpi": int(dpi),
    }


def _parse_progress(raw: Any) -> Optional[int]:
    """Percentage as an int; the API sends ints, floats or numeric strings."""
    if raw is None or raw == "":
        return 0
    try:
        return max(0, min(100, int(float(raw))))
    except (TypeError, ValueError, OverflowError):
        return None


def _classify_graphql_errors(errors: Any, status_code: int) -> ApiResult:
    """Map a GraphQL ``errors`` array onto an ApiErrorKind."""
    if not isinstance(errors, list):
        errors = [errors]

    messages = []
    codes = set()
    for error in errors:
        if isinstance(error, dict):
            messages.append(error.get("message") or "Unknown error")
            code = (error.get("extensions") or {}).get("code")
            if code:
                codes.add(str(code).upper())
        else:
            messages.append(str(error))

    if codes & UNAUTHORIZED_CODES or status_code in (401, 403):
        kind = ApiErrorKind.UNAUTHORIZED
    elif codes & NOT_FOUND_CODES:
        kind = ApiErrorKind.NOT_FOUND
    else:
        kind = ApiErrorKind.PROTOCOL_ERROR

    return ApiResult.failure(kind, ", ".join(messages), status_code)


def _classify_http_failure(
    status_code: int, payload: Any, response: httpx.Response
) -> ApiResult:
    """Map a non-GraphQL failure (bad status or unusable body)."""
    message = f"API request failed with status {status_code}"
    if isinstance(payload, dict):
        if payload.get("error"):
            message = f"{message}: {payload['error']}"
        elif payload.get("message"):
            message = str(payload["message"])
    elif payload is None:
        text = response.text or ""
        if text:
            message = f"{message}: {text[:200]}"

    if status_code in (401, 403):
        kind = ApiErrorKind.UNAUTHORIZED
    elif status_code == 404:
        kind = ApiErrorKind.NOT_FOUND
    else:
        kind = ApiErrorKind.UNKNOWN

    return ApiResult.failure(kind, message, status_code)
