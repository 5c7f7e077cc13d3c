"""Command group: guided traversal sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from faultpath.commands._base import FpGroup
from faultpath.domain.types import SessionState
from faultpath.infrastructure.repositories.query import SessionFilter
from faultpath.services.traversal import TraversalService

if TYPE_CHECKING:
    from faultpath.commands._context import AppContext

_SESSION_EXAMPLES = """\
  faultpath session start printer --tech alice --site "Branch 12"
  faultpath session answer <session-id> <connection-id>
  faultpath session show <session-id>
  faultpath session history <session-id>
  faultpath session abandon <session-id>
  faultpath session list --state concluded --category printer --limit 20
  faultpath session stats"""


@click.group(cls=FpGroup, examples=_SESSION_EXAMPLES)
@click.pass_obj
def session(app: AppContext) -> None:
    """Walk an issue one answer at a time."""


@session.command()
@click.argument("category")
@click.option("--tech", "tech_identifier", default=None, help="Technician identifier.")
@click.option("--site", "client_site", default=None, help="Client site.")
@click.pass_obj
def start(
    app: AppContext, category: str, tech_identifier: str | None, client_site: str | None
) -> None:
    """Open a session at the root question of CATEGORY."""
    app.emit(
        TraversalService(app.store).start(
            category, tech_identifier=tech_identifier, client_site=client_site
        )
    )


@session.command()
@click.argument("session_id")
@click.argument("connection_id")
@click.pass_obj
def answer(app: AppContext, session_id: str, connection_id: str) -> None:
    """Pick the answer CONNECTION_ID for the current question."""
    app.emit(TraversalService(app.store).answer(session_id, connection_id))


@session.command()
@click.argument("session_id")
@click.pass_obj
def abandon(app: AppContext, session_id: str) -> None:
    """Stop an active session without a conclusion."""
    app.emit(TraversalService(app.store).abandon(session_id))


@session.command()
@click.argument("session_id")
@click.pass_obj
def show(app: AppContext, session_id: str) -> None:
    """Show a session with its current question and options."""
    app.emit(TraversalService(app.store).get_session(session_id))


@session.command()
@click.argument("session_id")
@click.pass_obj
def history(app: AppContext, session_id: str) -> None:
    """Show the answers given so far."""
    app.emit(TraversalService(app.store).history(session_id))


@session.command(name="list")
@click.option(
    "--state",
    type=click.Choice([s.value for s in SessionState], case_sensitive=False),
    default=None,
    help="Filter by session state.",
)
@click.option("--category", default=None, help="Filter by category.")
@click.option("--after", "started_after", default=None, help="Started at or after (ISO date).")
@click.option("--before", "started_before", default=None, help="Started before (ISO date).")
@click.option("--tech", "tech_identifier", default=None, help="Filter by technician.")
@click.option("--search", default=None, help="Substring of the final conclusion.")
@click.option("--limit", type=int, default=None, help="Page size.")
@click.option("--offset", type=int, default=0, help="Rows to skip.")
@click.pass_obj
def list_cmd(
    app: AppContext,
    state: str | None,
    category: str | None,
    started_after: str | None,
    started_before: str | None,
    tech_identifier: str | None,
    search: str | None,
    limit: int | None,
    offset: int,
) -> None:
    """List sessions, newest first."""
    session_filter = SessionFilter(
        state=SessionState(state.lower()) if state else None,
        category=category,
        started_after=started_after,
        started_before=started_before,
        tech_identifier=tech_identifier,
        search=search,
    )
    app.emit(TraversalService(app.store).list_sessions(session_filter, limit=limit, offset=offset))


@session.command()
@click.pass_obj
def stats(app: AppContext) -> None:
    """Show session counts, average path length and top conclusions."""
    app.emit(TraversalService(app.store).stats())
