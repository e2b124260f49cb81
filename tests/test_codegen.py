"""Tests for lowering to view-builder expressions."""

from __future__ import annotations

import pytest

from mview import expand
from mview.codegen import CompileOptions
from mview.errors import CompileError, DiagnosticKind


class TestElements:
    def test_element_with_text(self, compile_source):
        assert compile_source('div { "hi" }') == 'view.html.div().child([view.text("hi")])'

    def test_no_child_block(self, compile_source):
        assert compile_source("br;") == "view.html.br()"

    def test_empty_child_block(self, compile_source):
        assert compile_source("div {}") == "view.html.div().child([])"

    def test_keyword_tag(self, compile_source):
        assert compile_source('del { "x" }') == 'view.html.del_().child([view.text("x")])'

    def test_custom_element(self, compile_source):
        assert compile_source("my-el {}") == 'view.html.custom("my-el").child([])'

    def test_svg_namespace(self, compile_source):
        assert compile_source("svg { circle r=5; }") == (
            'view.svg.svg().child([view.svg.circle().attr("r", 5)])'
        )

    def test_doctype(self, compile_source):
        assert compile_source("!DOCTYPE html;") == 'view.html.doctype("html")'

    def test_nested(self, compile_source):
        assert compile_source('ul { li { "a" } li { "b" } }') == (
            'view.html.ul().child(['
            'view.html.li().child([view.text("a")]), '
            'view.html.li().child([view.text("b")])])'
        )


class TestAttributes:
    def test_literal_attributes(self, compile_source):
        assert compile_source('a href="/" tabindex=-1;') == (
            'view.html.a().attr("href", "/").attr("tabindex", -1)'
        )

    def test_selectors(self, compile_source):
        assert compile_source("div.card#main;") == (
            'view.html.div().class_("card", True).attr("id", "main")'
        )

    def test_flag(self, compile_source):
        assert compile_source("input disabled;") == 'view.html.input().attr("disabled", True)'

    def test_brace_shorthand(self, compile_source):
        assert compile_source("div {aria-label};") == (
            'view.html.div().attr("aria-label", aria_label)'
        )

    def test_complex_expression_parenthesised(self, compile_source):
        assert compile_source("input value={a + b};") == (
            'view.html.input().attr("value", (a + b))'
        )

    def test_reactive_value(self, compile_source):
        assert compile_source("input value=[name()];") == (
            'view.html.input().attr("value", lambda: (name()))'
        )

    def test_format_value(self, compile_source):
        assert compile_source('div title=f["{}!", name];') == (
            'view.html.div().attr("title", lambda: str.format("{}!", name))'
        )

    def test_directives(self, compile_source):
        source = 'div class:active=[on] style:color="red" prop:value={v} attr:role="tab";'
        assert compile_source(source) == (
            'view.html.div().class_("active", lambda: on).style("color", "red")'
            '.prop("value", v).attr("role", "tab")'
        )

    def test_event_handler(self, compile_source):
        assert compile_source('button on:click={handle} { "go" }') == (
            'view.html.button().on("click", handle).child([view.text("go")])'
        )

    def test_use_directive(self, compile_source):
        assert compile_source('div use:tooltip={"hi"} use:focus;') == (
            'view.html.div().use(tooltip, "hi").use(focus, None)'
        )

    def test_bind_and_ref(self, compile_source):
        assert compile_source("input bind:value={name} ref={el};") == (
            'view.html.input().bind("value", name).node_ref(el)'
        )

    def test_spread_before_named(self, compile_source):
        assert compile_source('div class="a" {..rest} { "x" }') == (
            'view.html.div().attrs(rest).attr("class", "a").child([view.text("x")])'
        )

    def test_spreads_in_source_order(self, compile_source):
        assert compile_source("div {..a} x=1 {..b};") == (
            'view.html.div().attrs(a).attrs(b).attr("x", 1)'
        )


class TestComponents:
    def test_component_with_children(self, compile_source):
        assert compile_source('MyComp(x=1) { span { "y" } }') == (
            'view.component(MyComp).prop("x", 1)'
            '.children(lambda: [view.html.span().child([view.text("y")])])'
        )

    def test_component_without_block(self, compile_source):
        assert compile_source("Spinner;") == "view.component(Spinner).children()"

    def test_component_empty_block(self, compile_source):
        assert compile_source("Spinner {}") == "view.component(Spinner).children(lambda: [])"

    def test_component_path(self, compile_source):
        assert compile_source("Ui.Button;") == "view.component(Ui.Button).children()"

    def test_kebab_prop_becomes_snake(self, compile_source):
        assert compile_source("Chart max-value=3;") == (
            'view.component(Chart).prop("max_value", 3).children()'
        )

    def test_component_id_and_class(self, compile_source):
        assert compile_source("Card .wide #main;") == (
            'view.component(Card).class_("wide", True).attr("id", "main").children()'
        )

    def test_closure_args(self, compile_source):
        assert compile_source("Show |item| { {item} }") == (
            "view.component(Show).children(lambda item: [view.into_view(item)])"
        )

    def test_clone(self, compile_source):
        assert compile_source('Comp clone:data { "x" }') == (
            'view.component(Comp).children(lambda data=data: [view.text("x")])'
        )

    def test_slot(self, compile_source):
        assert compile_source('Tabs { slot:Tab label="a" { "A" } }') == (
            'view.component(Tabs).slot("tab", view.slot(Tab).prop("label", "a")'
            '.children(lambda: [view.text("A")])).children()'
        )

    def test_repeated_slot_becomes_list(self, compile_source):
        assert compile_source('Tabs { slot:Tab { "A" } slot:Tab { "B" } }') == (
            'view.component(Tabs).slot("tab", ['
            'view.slot(Tab).children(lambda: [view.text("A")]), '
            'view.slot(Tab).children(lambda: [view.text("B")])]).children()'
        )

    def test_slot_and_children(self, compile_source):
        assert compile_source('Card { slot:CardHeader { "h" } p { "body" } }') == (
            'view.component(Card).slot("card_header", view.slot(CardHeader)'
            '.children(lambda: [view.text("h")]))'
            '.children(lambda: [view.html.p().child([view.text("body")])])'
        )


class TestChildren:
    def test_dynamic_children(self, compile_source):
        assert compile_source('p { {x} [y] f["{} items", n] }') == (
            "view.html.p().child([view.into_view(x), view.into_view(lambda: y), "
            'view.into_view(lambda: str.format("{} items", n))])'
        )

    def test_fragment(self, compile_source):
        assert compile_source('div { ("a" "b") }') == (
            'view.html.div().child([view.fragment([view.text("a"), view.text("b")])])'
        )

    def test_multiple_roots(self, compile_source):
        assert compile_source('"a" "b"') == 'view.fragment([view.text("a"), view.text("b")])'

    def test_no_roots(self, compile_source):
        assert compile_source("") == "view.fragment([])"

    def test_nightly(self, compile_source):
        assert compile_source('p { "hi" {x} [y] }', nightly=True) == (
            'view.html.p().child(["hi", x, lambda: y])'
        )

    def test_custom_runtime(self, compile_source):
        assert compile_source("div {}", runtime="lv") == "lv.html.div().child([])"


class TestControl:
    def test_if(self, compile_source):
        assert compile_source('@if a > b { "a" }') == (
            'view.show(lambda: (a > b), lambda: [view.text("a")], None)'
        )

    def test_if_elif_else(self, compile_source):
        assert compile_source('@if x { "a" } @elif y { "b" } @else { "c" }') == (
            'view.show(lambda: x, lambda: [view.text("a")], lambda: ['
            'view.show(lambda: y, lambda: [view.text("b")], lambda: [view.text("c")])])'
        )

    def test_for_with_key(self, compile_source):
        assert compile_source("ul { @for item in items { li key={item.id} { {item.name} } } }") == (
            "view.html.ul().child([view.each(lambda: items, lambda item: item.id, "
            "lambda item: [view.html.li().child([view.into_view(item.name)])])])"
        )

    def test_for_tuple_target(self, compile_source):
        assert compile_source("@for i, x in enumerate(xs) { {i} }") == (
            "view.each(lambda: (enumerate(xs)), None, "
            "lambda _item: [[view.into_view(i)] for i, x in [_item]][0])"
        )

    def test_for_nested_target(self, compile_source):
        assert compile_source("ul { @for i, (a, b) in items { li key={i} { {a} } } }") == (
            "view.html.ul().child([view.each(lambda: items, "
            "lambda _item: [i for i, (a, b) in [_item]][0], "
            "lambda _item: [[view.html.li().child([view.into_view(a)])] "
            "for i, (a, b) in [_item]][0])])"
        )

    def test_for_parenthesised_name(self, compile_source):
        assert compile_source("@for (a), (b) in z { {a} }") == (
            "view.each(lambda: z, None, "
            "lambda _item: [[view.into_view(a)] for (a), (b) in [_item]][0])"
        )

    def test_for_target_is_mapped(self):
        expansion = expand("@for i, (a, b) in items { {a} }")
        output = expansion.output
        (mapping,) = [m for m in output.mappings if output.code[m.start : m.end] == "i, (a, b)"]
        assert mapping.span.start.column == 6

    def test_match(self, compile_source):
        assert compile_source('@match n { case 1 { "one" } case _ { "many" } }') == (
            'view.switch(lambda: n, [(1, lambda: [view.text("one")])], '
            'lambda: [view.text("many")])'
        )

    def test_match_without_default(self, compile_source):
        assert compile_source('@match n { case "a" {} }') == (
            'view.switch(lambda: n, [("a", lambda: [])], None)'
        )


class TestSourceMap:
    def test_expression_mapping(self):
        expansion = expand("div { {count} }")
        output = expansion.output
        (mapping,) = [m for m in output.mappings if output.code[m.start : m.end] == "count"]
        assert mapping.span.start.column == 8
        assert output.mapping_at(mapping.start + 2) == mapping

    def test_literal_mapping(self):
        expansion = expand('a href="/x";')
        output = expansion.output
        assert any(output.code[m.start : m.end] == '"/x"' for m in output.mappings)


class TestFailures:
    def test_unclosed_brace_single_diagnostic(self):
        expansion = expand("div {")
        assert expansion.code is None
        assert not expansion.ok
        assert [d.kind for d in expansion.diagnostics] == [DiagnosticKind.UNBALANCED_DELIMITER]

    def test_compile_raises(self, compile_source):
        with pytest.raises(CompileError) as exc_info:
            compile_source("div x=;")
        assert "error[UnexpectedToken]" in str(exc_info.value)

    def test_options_default(self):
        assert CompileOptions() == CompileOptions(runtime="view", nightly=False)
