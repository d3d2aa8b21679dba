# ============================================================================
# Tests for command extraction and display cleanup
# ============================================================================
"""Unit tests for the command parser."""

import pytest

from ai_admin.domains.salon_booking.application.services import (
    clean_display_text,
    parse_commands,
    remove_commands,
)
from ai_admin.domains.salon_booking.application.services.command_parser import parse_params
from ai_admin.domains.salon_booking.domain.value_objects import Command


class TestParseCommands:
    def test_extracts_commands_in_order(self) -> None:
        text = "hi [SHOW_PRICES] bye [SEARCH_SLOTS date: 2024-01-15, staff_name: Alex] end"

        commands = parse_commands(text)

        assert commands == [
            Command("SHOW_PRICES", {}),
            Command("SEARCH_SLOTS", {"date": "2024-01-15", "staff_name": "Alex"}),
        ]

    def test_no_commands(self) -> None:
        assert parse_commands("Добрый день! Чем могу помочь?") == []

    def test_value_with_colon_and_quotes(self) -> None:
        [command] = parse_commands('[CREATE_BOOKING service_id: 2, staff_id: 1, datetime: "2024-01-02 14:00"]')

        assert command.name == "CREATE_BOOKING"
        assert command.params["datetime"] == '"2024-01-02 14:00"'
        assert command.get("datetime") == "2024-01-02 14:00"
        assert command.get("service_id") == "2"

    def test_lowercase_brackets_are_not_commands(self) -> None:
        assert parse_commands("see [note] and [Hello world]") == []

    def test_cyrillic_values(self) -> None:
        [command] = parse_commands("[SEARCH_SLOTS service_name: стрижка, date: завтра]")
        assert command.get("service_name") == "стрижка"
        assert command.get("date") == "завтра"


class TestParseParams:
    def test_empty(self) -> None:
        assert parse_params(None) == {}
        assert parse_params("") == {}

    def test_trims_values(self) -> None:
        assert parse_params("a:  1 ,  b: two words") == {"a": "1", "b": "two words"}


class TestRemoveCommands:
    def test_removes_tokens_and_keeps_surrounding_text(self) -> None:
        text = "hi [SHOW_PRICES] bye [SEARCH_SLOTS date: 2024-01-15, staff_name: Alex] end"
        assert remove_commands(text) == "hi  bye  end"

    def test_only_command(self) -> None:
        assert remove_commands("[SHOW_PORTFOLIO]") == ""


class TestCleanDisplayText:
    def test_collapses_spaces(self) -> None:
        assert clean_display_text("hi  bye  end") == "hi bye end"

    def test_removes_filler_phrases(self) -> None:
        assert clean_display_text("Сейчас проверю... Есть время в 14:00.") == "Есть время в 14:00."
        assert clean_display_text("Let me check. We have 14:00 free.") == "We have 14:00 free."

    def test_replaces_pipes(self) -> None:
        assert clean_display_text("Стрижка | 1500 ₽ | Анна |") == "Стрижка. 1500 ₽. Анна"

    def test_space_before_punctuation_and_duplicates(self) -> None:
        assert clean_display_text("Готово !! Ждем вас ,Ольга..") == "Готово! Ждем вас,Ольга."

    def test_limits_blank_lines(self) -> None:
        assert clean_display_text("a\n\n\n\nb") == "a\n\nb"

    def test_strips_leading_punctuation(self) -> None:
        assert clean_display_text(", и еще кое-что") == "и еще кое-что"

    @pytest.mark.parametrize("text", ["", "   ", "\n\n"])
    def test_blank(self, text: str) -> None:
        assert clean_display_text(text) == ""

    def test_preserves_times(self) -> None:
        assert clean_display_text("Свободно: 10:00, 11:30") == "Свободно: 10:00, 11:30"
