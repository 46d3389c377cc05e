"""
Tests for entity identifier generation.
"""
import re
from datetime import datetime

import pytest

from fleetdesk.utils.ids import PASSWORD_ALPHABET, generate_entity_id, generate_password

NOW = datetime(2026, 10, 18, 9, 30, 15)


class TestGenerateEntityId:
    """Test identifier shapes."""

    @pytest.mark.parametrize("entity_type,prefix", [
        ("route", "RTE"),
        ("driver", "DRV"),
        ("vehicle", "VEH"),
        ("client", "CLT"),
        ("invoice", "INV"),
        ("expense", "EXP"),
    ])
    def test_timestamped_form(self, entity_type, prefix):
        entity_id = generate_entity_id(entity_type, now=NOW)
        assert re.fullmatch(rf"{prefix}-20261018-093015-[A-Z0-9]{{6}}", entity_id)

    def test_random_ids_differ(self):
        assert generate_entity_id("route", now=NOW) != generate_entity_id("route", now=NOW)

    def test_unknown_entity_type(self):
        with pytest.raises(KeyError):
            generate_entity_id("spaceship")


class TestGeneratePassword:
    def test_length_and_alphabet(self):
        password = generate_password(16)
        assert len(password) == 16
        assert set(password) <= set(PASSWORD_ALPHABET)

    def test_no_lookalikes(self):
        assert not set("0O1lI") & set(PASSWORD_ALPHABET)
