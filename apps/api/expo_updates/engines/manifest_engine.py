"""
Manifest endpoint — protocol dispatcher.

GET /api/manifest validates the protocol headers, runs the resolver,
signs the primary payload when the client expects a signature and writes
the multipart envelope. Resolution failures are UpdatesError subclasses
and are rendered by the application-wide handler.
"""
import logging

from fastapi import FastAPI, Request
from starlette.responses import JSONResponse, Response

from ..envelope import build_envelope, primary_payload
from ..errors import InvalidRequestError, UpdatesError
from ..resolver import ManifestOutcome, UpdateRequest

logger = logging.getLogger("expo_updates.manifest")

UNSUPPORTED_PROTOCOL = "Unsupported protocol version. Expected either 0 or 1."
SUPPORTED_PROTOCOL_VERSIONS = ("0", "1")


def _protocol_version(request: Request) -> int:
    """Single header value, 0 when absent."""
    values = request.headers.getlist("expo-protocol-version")
    if len(values) > 1:
        raise InvalidRequestError(UNSUPPORTED_PROTOCOL)
    raw = values[0].strip() if values else "0"
    if raw not in SUPPORTED_PROTOCOL_VERSIONS:
        raise InvalidRequestError(UNSUPPORTED_PROTOCOL)
    return int(raw)


def _server_address(request: Request) -> str:
    proto = request.headers.get("x-forwarded-proto", request.url.scheme or "http")
    host = request.headers.get("host", request.url.netloc)
    return f"{proto}://{host}"


def register(app: FastAPI):
    ctx = app.state.updates_context
    settings = ctx["settings"]
    resolver = ctx["resolver"]
    signer = ctx["signer"]
    delivery_log = ctx["delivery_log"]
    expected_platforms = " or ".join(f'"{p}"' for p in settings.platforms)

    @app.api_route("/api/manifest", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
    async def manifest_endpoint(request: Request):
        if request.method != "GET":
            return JSONResponse(status_code=405, content={"error": "Expected GET."})

        protocol_version = _protocol_version(request)

        platform = request.headers.get("expo-platform") or request.query_params.get("platform")
        if platform not in settings.platforms:
            raise InvalidRequestError(f"Unsupported platform. Expected {expected_platforms}.")

        runtime_version = request.headers.get("expo-runtime-version") or request.query_params.get("runtime-version")
        if not runtime_version:
            raise InvalidRequestError("No runtimeVersion provided.")

        channel = request.query_params.get("channel") or settings.default_channel
        logger.info("Request for runtime %s on channel '%s' (protocol %d)", runtime_version, channel, protocol_version)

        update_request = UpdateRequest(
            runtime_version=runtime_version,
            platform=platform,
            protocol_version=protocol_version,
            channel=channel,
            server_address=_server_address(request),
            current_update_id=request.headers.get("expo-current-update-id"),
            embedded_update_id=request.headers.get("expo-embedded-update-id"),
        )
        try:
            outcome = await resolver.resolve(update_request)
        except UpdatesError as e:
            logger.warning("Error finding update: %s", e.message)
            raise

        _, payload = primary_payload(outcome)
        signature = signer.maybe_sign(payload, request.headers.get("expo-expect-signature") is not None)
        body, headers = build_envelope(outcome, protocol_version, signature=signature, payload=payload)

        if isinstance(outcome, ManifestOutcome):
            kind, update_id = "manifest", outcome.manifest.id
        else:
            kind, update_id = outcome.directive.type, None
        delivery_log.record(
            kind,
            runtime_version=runtime_version,
            platform=platform,
            channel=channel,
            bundle=outcome.bundle.path if outcome.bundle else None,
            update_id=update_id,
            signed=signature is not None,
            request_id=request.headers.get("X-Request-ID", ""),
        )
        return Response(content=body, status_code=200, headers=headers)
