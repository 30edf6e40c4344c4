"""Tests for trait vectors and role profiles."""

import pytest

from sixvoices.personality import GroupSide, PersonalityRole, TraitVector, role_profile
from sixvoices.personality.traits import clamp_trait


class TestClampTrait:
    """Tests for rounding and clamping."""

    @pytest.mark.parametrize(
        "value,expected",
        [(2.5, 3), (3.49, 3), (0.5, 1), (-3, 1), (7, 5), (5.5, 5), (1.0, 1)],
    )
    def test_rounds_half_up_and_clamps(self, value: float, expected: int):
        assert clamp_trait(value) == expected


class TestTraitVector:
    """Tests for TraitVector validation and conversion."""

    def test_valid_vector(self):
        traits = TraitVector(4, 2, 5, 3, 2)
        assert traits.as_tuple() == (4, 2, 5, 3, 2)

    @pytest.mark.parametrize("bad", [0, 6, -1])
    def test_out_of_range_raises(self, bad: int):
        with pytest.raises(ValueError):
            TraitVector(3, 3, bad, 3, 3)

    def test_non_integer_raises(self):
        with pytest.raises(ValueError):
            TraitVector(3, 3, 3.5, 3, 3)  # type: ignore[arg-type]

    def test_bool_rejected(self):
        with pytest.raises(ValueError):
            TraitVector(True, 3, 3, 3, 3)  # type: ignore[arg-type]

    def test_dict_round_trip(self):
        traits = TraitVector(1, 2, 3, 4, 5)
        data = traits.to_dict()
        assert data == {
            "openness": 1,
            "conscientiousness": 2,
            "extraversion": 3,
            "agreeableness": 4,
            "neuroticism": 5,
        }
        assert TraitVector.from_dict(data) == traits

    def test_from_scores_rounds(self):
        assert TraitVector.from_scores(4.5, 0.2, 2.49, 9, 3).as_tuple() == (5, 1, 2, 5, 3)

    def test_from_scores_wrong_length(self):
        with pytest.raises(ValueError):
            TraitVector.from_scores(1, 2, 3)

    def test_frozen(self):
        traits = TraitVector(3, 3, 3, 3, 3)
        with pytest.raises(AttributeError):
            traits.openness = 4  # type: ignore[misc]


class TestRoleProfiles:
    """Tests for the static role table."""

    def test_every_role_has_profile(self):
        for role in PersonalityRole:
            assert role_profile(role).display_name

    def test_group_sides(self):
        left = {r for r in PersonalityRole if role_profile(r).group_side is GroupSide.LEFT}
        right = {r for r in PersonalityRole if role_profile(r).group_side is GroupSide.RIGHT}
        assert left == {PersonalityRole.SELF, PersonalityRole.IDEAL, PersonalityRole.ELDER}
        assert right == {
            PersonalityRole.OPPOSITE,
            PersonalityRole.UNFILTERED,
            PersonalityRole.CHILDHOOD,
        }
