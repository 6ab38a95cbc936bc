"""Tests for perch.render.styles: style ids and idempotent emission."""

from perch.render.styles import StyleSheet, normalize_rule, style_id


class TestStyleId:
    def test_stable_and_prefixed(self) -> None:
        assert style_id("color: red") == style_id("color: red")
        assert style_id("color: red").startswith("css-")

    def test_cosmetic_whitespace_ignored(self) -> None:
        assert style_id("color: red;  padding: 4px;") == style_id("color: red; padding: 4px")

    def test_different_rules_differ(self) -> None:
        assert style_id("color: red") != style_id("color: blue")

    def test_custom_key(self) -> None:
        assert style_id("color: red", "app").startswith("app-")

    def test_normalize_rule(self) -> None:
        assert normalize_rule("  color:  red ;\n") == "color: red"


class TestStyleSheet:
    def test_insert_returns_class_name(self) -> None:
        sheet = StyleSheet()
        name = sheet.insert("color: red")
        assert name == style_id("color: red")
        assert sheet.rule(name) == f".{name}{{color: red;}}"

    def test_emission_is_idempotent(self) -> None:
        sheet = StyleSheet()
        first = sheet.insert("color: red")
        sheet.insert("padding: 4px")
        sheet.insert("color: red")
        assert sheet.get_record() == (first, style_id("padding: 4px"))
        assert sheet.to_markup().count(f'data-perch-css="{first}"') == 1

    def test_restored_ids_not_emitted_again(self) -> None:
        server = StyleSheet()
        name = server.insert("color: red")

        client = StyleSheet()
        client.restore(server.get_record())
        assert client.insert("color: red") == name
        assert client.get_record() == ()
        assert client.to_markup() == ""
        assert client.inserted_ids == (name,)

    def test_inserted_ids_restored_then_new(self) -> None:
        sheet = StyleSheet()
        sheet.restore(["css-b", "css-a"])
        new = sheet.insert("margin: 0")
        assert sheet.inserted_ids == ("css-a", "css-b", new)

    def test_style_text_cannot_close_tag(self) -> None:
        sheet = StyleSheet()
        sheet.insert("content: '</style><script>'")
        markup = sheet.to_markup()
        assert markup.count("</style>") == 1
        assert "<script>" not in markup

    def test_fresh_sheets_do_not_share_records(self) -> None:
        a, b = StyleSheet(), StyleSheet()
        a.insert("color: red")
        assert b.get_record() == ()
