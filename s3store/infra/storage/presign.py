"""Presigned request construction.

A presigned request is what a third party needs to perform one S3 call
without holding credentials: the signed URL, the headers that were signed
along with it, and for ``CompleteMultipartUpload`` the XML body, since that
operation carries its part list in the payload rather than in the URL.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from botocore.serialize import create_serializer

from s3store.infra.storage.errors import UnexpectedError


@dataclass(frozen=True, slots=True)
class PresignedRequest:
    """A signed HTTP request to be executed later by someone else."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | None = None


class RequestPresigner:
    """Signs boto3 parameter dictionaries into :class:`PresignedRequest`.

    Expiry is enforced by S3 when the URL is used, never locally. Calls that
    give no lifetime get ``default_expires_in``.
    """

    def __init__(self, client: Any, default_expires_in: int = 900) -> None:
        self._client = client
        self._default_expires_in = int(default_expires_in)

    def presign(
        self,
        client_method: str,
        http_method: str,
        params: dict[str, Any],
        expires_in: int | None = None,
        *,
        include_body: bool = False,
    ) -> PresignedRequest:
        """Presign one call of the boto3 client.

        Args:
            client_method: boto3 method name, e.g. ``"upload_part"``.
            http_method: HTTP verb the caller must use.
            params: Parameters as built by the request formatter.
            expires_in: URL lifetime in seconds; ``None`` means the default.
            include_body: Serialize the request payload into ``body``.
        """
        if expires_in is None:
            expires_in = self._default_expires_in
        url = self._client.generate_presigned_url(
            client_method,
            Params=params,
            ExpiresIn=int(expires_in),
            HttpMethod=http_method,
        )
        if not url:
            raise UnexpectedError("Generated presigned URL is empty")

        request_dict = self._serialize(client_method, params)
        headers = {
            str(name): str(value)
            for name, value in request_dict.get("headers", {}).items()
        }

        body: bytes | None = None
        if include_body:
            raw_body = request_dict.get("body") or b""
            body = raw_body.encode("utf-8") if isinstance(raw_body, str) else raw_body
            headers.setdefault("Content-Length", str(len(body)))

        return PresignedRequest(
            method=http_method,
            url=str(url),
            headers=headers,
            body=body,
        )

    def _serialize(self, client_method: str, params: dict[str, Any]) -> dict[str, Any]:
        """Run the operation's wire serializer over ``params``.

        This yields the same headers and payload botocore would put on the
        wire for a direct call.
        """
        meta = self._client.meta
        operation_name = meta.method_to_api_mapping[client_method]
        service_model = meta.service_model
        operation_model = service_model.operation_model(operation_name)
        serializer = create_serializer(service_model.protocol, include_validation=True)
        return serializer.serialize_to_request(params, operation_model)
