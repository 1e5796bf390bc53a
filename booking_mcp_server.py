from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator

from mcp.server.fastmcp import Context, FastMCP

from workstation_booking import BookingConfig, BookingService, open_service
from workstation_booking.parsing import parse_date, parse_reservation_request, parse_time


@dataclass
class BookingContext:
    service: BookingService


@asynccontextmanager
async def booking_lifespan(server: FastMCP) -> AsyncIterator[BookingContext]:
    """Open the configured store for the lifetime of the server."""
    with open_service(BookingConfig.from_env()) as service:
        yield BookingContext(service=service)


mcp = FastMCP(
    "Workstation Booking MCP Server",
    instructions="Expose workstations and their reservations from the workstation_booking project.",
    json_response=True,
    lifespan=booking_lifespan,
)


def _service(ctx: Context | None = None) -> BookingService:
    context = ctx or mcp.get_context()
    return context.request_context.lifespan_context.service


@mcp.resource("booking://resources")
async def list_resources() -> list[dict[str, Any]]:
    """List registered workstations with their current status."""
    return [resource.to_dict() for resource in _service().list_resources()]


@mcp.tool()
def list_reservations(ctx: Context, resource_id: int | None = None) -> list[dict[str, Any]]:
    """Return reservations that have not ended, optionally for one workstation."""
    return [row.to_dict() for row in _service(ctx).list_reservations(resource_id=resource_id)]


@mcp.tool()
def add_reservation(
    reservation_id: int,
    resource_id: int,
    client_name: str,
    date: str,
    start: str,
    end: str,
    ctx: Context,
) -> dict[str, Any]:
    """Book a workstation. ``date`` is DD-MM-YYYY, ``start`` and ``end`` are HH:MM."""
    created = _service(ctx).add_reservation(
        reservation_id=reservation_id,
        resource_id=resource_id,
        client_name=client_name,
        date=parse_date(date),
        start=parse_time(start),
        end=parse_time(end),
    )
    return created.to_dict()


@mcp.tool()
def add_reservation_from_text(reservation_id: int, client_name: str, text: str, ctx: Context) -> dict[str, Any]:
    """Book from text such as 'desk 3 10-06-2025 09:00~10:00'."""
    parsed = parse_reservation_request(text)
    created = _service(ctx).add_reservation(
        reservation_id=reservation_id,
        resource_id=parsed.resource_id,
        client_name=client_name,
        date=parsed.date,
        start=parsed.start,
        end=parsed.end,
    )
    return created.to_dict()


@mcp.tool()
def cancel_reservation(reservation_id: int, ctx: Context) -> dict[str, Any]:
    """Delete a reservation and refresh its workstation status."""
    return _service(ctx).remove_reservation(reservation_id).to_dict()


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
