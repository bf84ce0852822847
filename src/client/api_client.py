import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from src.domain.exceptions import (
    HoldExpiredError,
    HoldNotFoundError,
    ReservationRejected,
    SeatNotFoundError,
    SeatUnavailableError,
    ShowNotFoundError,
    StorageUnavailableError,
)

logger = logging.getLogger(__name__)

_REJECTIONS_BY_CODE = {
    error.code: error
    for error in (
        SeatUnavailableError,
        HoldNotFoundError,
        HoldExpiredError,
        SeatNotFoundError,
        ShowNotFoundError,
    )
}


def parse_timestamp(value: str | None) -> datetime | None:
    if value is None:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ReservationApiClient:
    """
    Thin HTTP client for the seat hold API.

    Rejections come back as the same domain exceptions the service
    raises, so callers handle local and remote stores alike.
    """

    def __init__(self, http: httpx.Client):
        self.http = http

    def create_show(self, seat_count: int, name: str = "Show") -> dict[str, Any]:
        return self._request(
            "POST",
            "/shows",
            json={"seat_count": seat_count, "name": name},
        )

    def list_seats(self, show_id: str) -> list[dict[str, Any]]:
        return self._request("GET", f"/shows/{show_id}/seats")

    def hold(self, show_id: str, seat_label: str, requester_name: str) -> dict[str, Any]:
        return self._request(
            "POST",
            f"/shows/{show_id}/seats/{seat_label}/hold",
            json={"requester_name": requester_name},
        )

    def get_hold(self, token: str) -> dict[str, Any]:
        return self._request("GET", f"/holds/{token}")

    def confirm(self, token: str) -> dict[str, Any]:
        return self._request("POST", f"/holds/{token}/confirm")

    def release(self, token: str) -> dict[str, Any]:
        return self._request("POST", f"/holds/{token}/release")

    def _request(self, method: str, url: str, **kwargs) -> Any:
        try:
            response = self.http.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            logger.warning("Seat hold API unreachable: %s %s (%s)", method, url, exc)
            raise StorageUnavailableError(f"{method} {url} failed: {exc}") from exc

        if response.is_success:
            return response.json()

        self._raise_for_rejection(response)
        response.raise_for_status()

    @staticmethod
    def _raise_for_rejection(response: httpx.Response) -> None:
        if response.status_code == httpx.codes.SERVICE_UNAVAILABLE:
            raise StorageUnavailableError(_detail_message(response))

        try:
            detail = response.json().get("detail")
        except ValueError:
            return
        if not isinstance(detail, dict):
            return

        error = _REJECTIONS_BY_CODE.get(detail.get("code"))
        if error is not None:
            raise error(detail.get("message", ""))
        if response.status_code == httpx.codes.CONFLICT:
            raise ReservationRejected(detail.get("message", ""))


def _detail_message(response: httpx.Response) -> str:
    try:
        detail = response.json().get("detail")
    except ValueError:
        return response.text
    if isinstance(detail, dict):
        return detail.get("message", "")
    return str(detail)
