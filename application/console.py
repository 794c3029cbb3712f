"""Line-oriented labeling console used by `main.py label`."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from application.labeling import LabelingSession
from application.selector import NodeListing
from domain.errors import BackendError, SubmissionRejectedError, WorkstationError
from domain.schemas import TaxonomyNode
from domain.taxonomy.unknown import UNKNOWN_LABEL, is_unknown_node_code

logger = logging.getLogger(__name__)

ReadLine = Callable[[str], Awaitable[str]]

HELP_TEXT = """\
Commands:
  <n>            select node n of the current listing
  ls             list nodes of the level being browsed
  / <query>      search across all levels (empty query returns to browsing)
  u              mark the level being browsed as Unknown
  d <level>      delete the label at <level> and deeper
  up             go up one breadcrumb level
  f <level>      browse the alternatives of a selected level
  t <index>      switch taxonomy tab
  r              restore the AI suggestion
  submit | skip | flag | next | prev
  names          toggle level names
  q              quit"""


async def _stdin_readline(prompt: str) -> str:
    return await asyncio.to_thread(input, prompt)


class LabelConsole:
    def __init__(
        self,
        session: LabelingSession,
        *,
        read_line: ReadLine = _stdin_readline,
        write: Callable[[str], None] = print,
    ) -> None:
        self.session = session
        self.read_line = read_line
        self.write = write
        self.listing = NodeListing()

    # ---- rendering ----
    def _label_text(self, code: str, label: str | None) -> str:
        if is_unknown_node_code(code):
            return UNKNOWN_LABEL
        return f"{code} - {label or ''}".rstrip(" -")

    def render_header(self) -> None:
        s = self.session
        record = s.record
        if record is None:
            self.write("No record loaded.")
            return
        self.write("")
        self.write(f"Record {record.id} [{record.status.value}]{' (flagged)' if record.flagged else ''}")
        for name, value in record.fields.items():
            self.write(f"  {name}: {value}")

        tabs = []
        for i, tax in enumerate(s.taxonomies):
            mark = "*" if i == s.active_index else " "
            done = "done" if s.tracker.is_complete(tax.key) else "open"
            tabs.append(f"{mark}{i}:{tax.display_name or tax.key} ({done})")
        self.write("Taxonomies: " + "  ".join(tabs))

        selector = s.selector
        if selector is None:
            return
        chips = [f"L{lbl.level} {self._label_text(lbl.node_code, lbl.label)}" for lbl in selector.labels]
        self.write("Selected: " + (" | ".join(chips) if chips else "No labels selected"))
        if s.has_ai_suggestion:
            self.write(f"AI suggestion: {'modified (r to restore)' if s.is_diverged else 'unchanged'}")
        self.write(f"Submit: {'enabled' if s.can_submit else 'disabled'}  ({s.tracker.progress_text()})")

    def render_listing(self, listing: NodeListing) -> None:
        self.listing = listing
        selector = self.session.selector
        if listing.query:
            self.write(f"Search results for '{listing.query}':")
        elif selector is not None and listing.level is not None:
            crumbs = " > ".join(lbl.node_code for lbl in selector.breadcrumb) or "root"
            self.write(f"{selector.level_label(listing.level)} under {crumbs}:")
        if listing.is_empty:
            self.write(f"  {listing.empty_message}")
            return
        for i, node in enumerate(listing.nodes, start=1):
            leaf = "" if not node.is_leaf else " ."
            level = f"L{node.level} " if listing.query else ""
            self.write(f"  {i:>3}. {level}{node.code} {node.label}{leaf}")

    def _pick(self, arg: str) -> TaxonomyNode | None:
        try:
            index = int(arg)
        except ValueError:
            return None
        if 1 <= index <= len(self.listing.nodes):
            return self.listing.nodes[index - 1]
        self.write(f"No node {index} in the current listing.")
        return None

    # ---- commands ----
    async def handle(self, line: str) -> bool:
        """Execute one command line; returns False when the console should exit."""
        cmd, _, arg = line.strip().partition(" ")
        arg = arg.strip()
        s = self.session
        selector = s.selector
        relist = False

        if cmd in ("q", "quit", "exit"):
            return False
        if cmd in ("h", "help", "?"):
            self.write(HELP_TEXT)
            return True
        if selector is None:
            self.write("No record loaded.")
            return True

        try:
            if cmd.isdigit():
                node = self._pick(cmd)
                if node is None:
                    return True
                if self.listing.query:
                    if not await selector.select_search_result(node):
                        self.write("Could not resolve the path of that node.")
                else:
                    selector.select_node(node)
                self.render_listing(await selector.list_nodes())
            elif cmd == "ls":
                self.render_listing(await selector.list_nodes())
            elif cmd == "/":
                listing = await selector.search(arg)
                if listing is not None:
                    self.render_listing(listing)
            elif cmd == "u":
                selector.select_unknown()
            elif cmd == "d":
                selector.delete_label(int(arg))
                self.render_listing(await selector.list_nodes())
            elif cmd == "up":
                selector.navigate_up()
                self.render_listing(await selector.list_nodes())
            elif cmd == "f":
                selector.focus_label(int(arg))
                self.render_listing(await selector.list_nodes())
            elif cmd == "t":
                s.switch_taxonomy(int(arg))
                relist = True
            elif cmd == "r":
                s.restore_ai_suggestion()
                relist = True
            elif cmd == "names":
                s.context.show_level_names = not s.context.show_level_names
            elif cmd == "submit":
                outcome = await s.submit()
                if outcome is not None:
                    self.write(f"Saved ({outcome.result.status.value}).")
                    relist = True
                    if outcome.end_of_queue:
                        self.write("End of queue.")
                        return False
            elif cmd == "skip":
                relist = True
                if await s.skip() is None:
                    self.write("End of queue.")
                    return False
            elif cmd == "flag":
                flagged = await s.toggle_flag()
                self.write("Flagged." if flagged else "Unflagged.")
            elif cmd == "next":
                relist = True
                if await s.next_record() is None:
                    self.write("End of queue.")
            elif cmd == "prev":
                relist = True
                if await s.previous_record() is None:
                    self.write("Already at the first record.")
            else:
                self.write(f"Unknown command: {cmd} (h for help)")
                return True
        except SubmissionRejectedError as e:
            self.write(str(e))
        except (ValueError, KeyError, IndexError) as e:
            self.write(f"Invalid input: {e}")
        except BackendError as e:
            logger.error("Backend call failed: %s", e)
            self.write(f"Request failed: {e}")
        except WorkstationError as e:
            self.write(str(e))

        if relist:
            # Active taxonomy or record may have changed
            self.listing = NodeListing()
        self.render_header()
        if relist and s.selector is not None:
            self.render_listing(await s.selector.list_nodes())
        return True

    async def run(self) -> None:
        self.render_header()
        if self.session.selector is not None:
            self.render_listing(await self.session.selector.list_nodes())
        while True:
            try:
                line = await self.read_line("label> ")
            except EOFError:
                break
            if not await self.handle(line):
                break
