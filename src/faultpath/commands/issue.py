"""Command group: whole-issue operations (one issue per category)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from faultpath.commands._base import FpGroup
from faultpath.services.graph import GraphService
from faultpath.services.issues import IssueService

if TYPE_CHECKING:
    from faultpath.commands._context import AppContext

_ISSUE_EXAMPLES = """\
  faultpath issue list
  faultpath issue create printer "Does the printer power on?" --display Hardware
  faultpath issue check printer
  faultpath issue update printer --display Peripherals --inactive
  faultpath issue activate printer
  faultpath issue deactivate printer
  faultpath issue tree printer
  faultpath issue delete printer"""


@click.group(cls=FpGroup, examples=_ISSUE_EXAMPLES)
@click.pass_obj
def issue(app: AppContext) -> None:
    """Manage troubleshooting issues and inspect their graphs."""


@issue.command(name="list")
@click.pass_obj
def list_cmd(app: AppContext) -> None:
    """List every issue with its root question."""
    app.emit(IssueService(app.store).list_issues())


@issue.command()
@click.argument("category")
@click.argument("root_question")
@click.option("--display", "display_category", default=None, help="UI grouping label.")
@click.pass_obj
def create(app: AppContext, category: str, root_question: str, display_category: str | None) -> None:
    """Create CATEGORY with ROOT_QUESTION as its starting node."""
    app.emit(
        IssueService(app.store).create_issue(
            category, root_question, display_category=display_category
        )
    )


@issue.command()
@click.argument("category")
@click.option("--force", is_flag=True, help="Activate even with unanswered questions.")
@click.pass_obj
def activate(app: AppContext, category: str, force: bool) -> None:
    """Make an issue available for traversal."""
    app.emit(IssueService(app.store).set_issue_active(category, True, force=force))


@issue.command()
@click.argument("category")
@click.pass_obj
def deactivate(app: AppContext, category: str) -> None:
    """Hide an issue from traversal."""
    app.emit(IssueService(app.store).set_issue_active(category, False))


@issue.command()
@click.argument("category")
@click.option("--display", "display_category", default=None, help="New UI grouping label ('' clears it).")
@click.option("--active/--inactive", "is_active", default=None, help="Activate or deactivate the issue.")
@click.option("--force", is_flag=True, help="Activate even with unanswered questions.")
@click.pass_obj
def update(
    app: AppContext, category: str, display_category: str | None, is_active: bool | None, force: bool
) -> None:
    """Change an issue's display label and/or activity in one step."""
    app.emit(
        IssueService(app.store).update_issue(
            category, display_category=display_category, is_active=is_active, force=force
        )
    )


@issue.command()
@click.argument("category")
@click.confirmation_option(prompt="Delete this issue and all of its nodes?")
@click.pass_obj
def delete(app: AppContext, category: str) -> None:
    """Delete an issue and every connection touching it."""
    app.emit(IssueService(app.store).delete_issue(category))


@issue.command()
@click.argument("category")
@click.pass_obj
def graph(app: AppContext, category: str) -> None:
    """Show the active nodes and connections of an issue."""
    app.emit(GraphService(app.store).get_graph(category))


@issue.command()
@click.argument("category")
@click.pass_obj
def tree(app: AppContext, category: str) -> None:
    """Show an issue as a tree rooted at its first question."""
    app.emit(GraphService(app.store).get_tree(category))


@issue.command()
@click.argument("category")
@click.pass_obj
def check(app: AppContext, category: str) -> None:
    """Report unanswered questions, unreachable nodes and cycles."""
    app.emit(GraphService(app.store).is_complete(category))
