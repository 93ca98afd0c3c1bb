import asyncio

from lsprotocol.types import Position

from plsqlnav.features.resolve import (
    Role,
    classify_context,
    entry_rank,
    pick_entry,
    resolve_definition,
)
from plsqlnav.features.symbol_table import Section
from plsqlnav.parser import build_index

SOURCE = """create or replace package body orders is
  function total return number is begin return 1; end;
  procedure ship is
  begin
    update order_lines set amount = total where id = 1;
    log_it('total');
    -- total
  end ship;
end orders;
/
"""


def _classify(line, character, word):
    return classify_context(SOURCE, build_index(SOURCE), Position(line=line, character=character), word)


def test_classify_declaration_site():
    context = _classify(1, 12, "total")
    assert context.role is Role.AT_DECLARATION_SITE
    assert context.declaration.name == "total"

    context = _classify(2, 4, "procedure")
    assert context.role is Role.AT_DECLARATION_SITE
    assert context.declaration.name == "ship"


def test_classify_dml_reference():
    context = _classify(4, 38, "total")
    assert context.role is Role.AT_DML_REFERENCE
    assert context.expected_base == "function"
    assert [e.name for e in context.enclosing] == ["ship", "orders"]


def test_classify_call_site():
    context = _classify(5, 5, "log_it")
    assert context.role is Role.AT_CALL_SITE
    assert context.expected_base is None


def test_classify_qualified_word():
    context = _classify(5, 5, "app.orders.log_it")
    assert context.identifier == "log_it"
    assert context.qualifiers == ["app", "orders"]


def test_classify_non_references():
    assert _classify(4, 5, "update") is None
    assert _classify(5, 14, "total") is None
    assert _classify(6, 8, "total") is None
    assert _classify(4, 53, "1") is None
    assert _classify(0, 0, "") is None
    assert _classify(5, 5, "orders.") is None


def test_pick_entry_prefers_body_definitions():
    index = build_index(
        "create package p is\n  function f return number;\nend;\n/\n"
        "create package body p is\n"
        "  function f return number;\n"
        "  procedure f is begin null; end;\n"
        "  function f return number is begin return 1; end;\n"
        "end;\n/\n"
    )
    candidates = index.get_by_name("f")
    best = pick_entry(candidates, expected_base="function")
    assert (best.position.line, best.section, best.forward) == (7, Section.BODY, False)
    # Without an expected kind the earliest body definition wins
    assert pick_entry(candidates).position.line == 6
    assert pick_entry([]) is None


def test_entry_rank_declaration_site_ignores_section():
    index = build_index("create package p is\n  procedure f;\nend;\n")
    spec_entry = index.get_by_name("f")[0]
    assert entry_rank(spec_entry, role=Role.AT_DECLARATION_SITE)[1] == 0
    assert entry_rank(spec_entry, role=Role.AT_CALL_SITE)[1] == 1


def test_documents_opened_once_per_request(workspace_factory):
    workspace = workspace_factory(
        {
            "orders.pks": "create package orders is\n  procedure ship;\nend;\n/\n",
            "orders.pkb": "create package body orders is\n  procedure ship is begin null; end;\nend;\n/\n",
            "caller.sql": "begin\n  orders.ship;\n  orders.ship;\nend;\n/\n",
        }
    )
    uri = workspace.uri("caller.sql")
    resolved = asyncio.run(
        resolve_definition(
            workspace.context(),
            uri,
            workspace.documents[uri],
            Position(line=1, character=10),
            "orders.ship",
        )
    )
    assert resolved.uri == workspace.uri("orders.pkb")
    assert (resolved.position.line, resolved.position.character) == (1, 2)
    assert resolved.entry.name == "ship"
    assert sorted(workspace.opened) == [workspace.uri("orders.pkb"), workspace.uri("orders.pks")]


def test_file_named_after_subprogram(workspace_factory):
    workspace = workspace_factory(
        {
            "xyz_report.sql": "-- report script\nset serveroutput on\n",
            "caller.sql": "begin\n  report;\nend;\n/\n",
        }
    )
    uri = workspace.uri("caller.sql")
    resolved = asyncio.run(
        resolve_definition(
            workspace.context(),
            uri,
            workspace.documents[uri],
            Position(line=1, character=4),
            "report",
        )
    )
    assert resolved.uri == workspace.uri("xyz_report.sql")
    assert resolved.entry is None
    assert (resolved.position.line, resolved.position.character) == (0, 0)


def test_workspace_listed_once_per_request(workspace_factory):
    workspace = workspace_factory(
        {
            "orders.pks": "create package orders is\n  procedure ship;\nend;\n/\n",
            "orders.pkb": (
                "create package body orders is\n"
                "  procedure ship is\n"
                "  begin\n"
                "    record_shipment;\n"
                "  end;\n"
                "end;\n"
                "/\n"
            ),
            "record_shipment.prc": "create procedure record_shipment is begin null; end;\n/\n",
        }
    )
    uri = workspace.uri("orders.pkb")
    resolved = asyncio.run(
        resolve_definition(
            workspace.context(),
            uri,
            workspace.documents[uri],
            Position(line=3, character=8),
            "record_shipment",
        )
    )
    assert resolved.uri == workspace.uri("record_shipment.prc")
    assert workspace.listings == 1
