from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)

Coordinate = tuple[float, float]


class RoutingClient:
    """Driving times from an OSRM-compatible ``table`` service.

    Lookups are best-effort: when the service is missing or fails, every
    destination comes back as ``None`` (unknown, ranked as unreachable).
    """

    def __init__(
        self,
        base_url: str | None,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/") if base_url else None
        self._timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return self._base_url is not None

    async def driving_times(self, origin: Coordinate, destinations: list[Coordinate]) -> list[float | None]:
        unknown: list[float | None] = [None] * len(destinations)
        if not self._base_url or not destinations:
            return unknown

        points = ";".join(f"{lng},{lat}" for lng, lat in [origin, *destinations])
        url = f"{self._base_url}/table/v1/driving/{points}"
        params = {"sources": "0", "annotations": "duration"}

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                res = await client.get(url, params=params)
                res.raise_for_status()
                data = res.json()
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning("Routing lookup failed: %s", exc)
                return unknown

        if data.get("code") != "Ok":
            logger.warning("Routing service answered %s", data.get("code"))
            return unknown
        try:
            row = data["durations"][0][1:]
        except (KeyError, IndexError, TypeError):
            return unknown
        if len(row) != len(destinations):
            return unknown
        return [float(v) if v is not None else None for v in row]
