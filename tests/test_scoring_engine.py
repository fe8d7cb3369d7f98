"""Tests for the pure scoring engine and auto-approval decision."""

import copy

import pytest

from config.scoring_config import default_scoring_config
from conftest import make_answers
from services.scoring_engine import (
    calculate_profile_completion,
    calculate_score,
    effective_capacity,
    round_score,
    score_application,
    should_auto_approve,
)


@pytest.fixture()
def config():
    return default_scoring_config()


def _with_weights(config, category, **weights):
    config = copy.deepcopy(config)
    config['weights'][category].update(weights)
    return config


class TestConcreteScenarios:
    def test_engaged_fitter_scores_eight_and_is_approved(self, config):
        answers = make_answers(
            role='fitter_builder',
            buy_frequency='monthly',
            share_frequency='monthly',
            learn_channels=['youtube'],
        )
        score = calculate_score(answers, config)
        assert score == 8.0
        assert should_auto_approve(score, 50, 150, config) is True

    def test_full_capacity_blocks_approval(self, config):
        assert should_auto_approve(8.0, 150, 150, config) is False

    def test_baseline_golfer_scores_zero(self, config):
        answers = make_answers(buy_frequency='yearly_1_2', share_frequency='never')
        score = calculate_score(answers, config)
        assert score == 0.0
        assert should_auto_approve(score, 0, 150, config) is False

    def test_breakdown_lists_each_dimension(self, config):
        result = score_application(make_answers(role='creator', invite_code='ABC123'), config)
        assert result['breakdown']['role'] == 2
        assert result['breakdown']['inviteCode'] == 2
        assert result['breakdown']['spendBracket'] == 0
        assert result['cappedTotal'] == 4.0


class TestCaps:
    def test_share_channels_capped(self, config):
        result = score_application(make_answers(share_channels=['reddit', 'golfwrx', 'instagram']), config)
        assert result['breakdown']['shareChannels'] == 2

    def test_social_media_counted_once(self, config):
        result = score_application(make_answers(share_channels=['instagram', 'tiktok', 'youtube']), config)
        assert result['breakdown']['shareChannels'] == 1

    def test_learn_channels_match_substrings_and_cap(self, config):
        channels = ['YouTube', 'reddit', 'Local fitter', 'Brand websites']
        result = score_application(make_answers(learn_channels=channels), config)
        assert result['breakdown']['learnChannels'] == 3

    def test_uses_capped(self, config):
        uses = ['discover new gear', 'follow friends', 'track my builds']
        result = score_application(make_answers(uses=uses), config)
        assert result['breakdown']['uses'] == 2

    def test_total_cap(self, config):
        answers = make_answers(
            role='fitter_builder',
            share_channels=['reddit', 'golfwrx'],
            learn_channels=['youtube', 'reddit', 'fitter'],
            uses=['research', 'friends'],
            buy_frequency='weekly_plus',
            share_frequency='weekly_plus',
            city_region='Scottsdale, AZ',
            invite_code='FRIEND',
        )
        result = score_application(answers, config)
        assert result['total'] > 10
        assert result['cappedTotal'] == 10.0

    def test_negative_weights_never_go_below_zero(self, config):
        config = _with_weights(config, 'role', golfer=-5)
        assert calculate_score(make_answers(), config) == 0.0


class TestTolerance:
    def test_unknown_values_score_zero(self, config):
        answers = make_answers(
            role='tour_pro',
            buy_frequency='daily',
            share_frequency=None,
            spend_bracket='priceless',
            share_channels=[None, 5, 'myspace'],
            learn_channels='youtube',
            uses={'not': 'a list'},
            city_region=42,
        )
        assert calculate_score(answers, config) == 0.0

    def test_non_dict_answers(self, config):
        assert calculate_score(None, config) == 0.0

    def test_non_numeric_weights_ignored(self, config):
        config = _with_weights(config, 'role', fitter_builder='lots')
        assert calculate_score(make_answers(role='fitter_builder'), config) == 0.0

    def test_deterministic(self, config):
        answers = make_answers(role='creator', uses=['track builds'], city_region='Mesa')
        assert calculate_score(answers, config) == calculate_score(answers, config)


class TestMonotonicity:
    def test_raising_held_weight_raises_score(self, config):
        answers = make_answers(role='fitter_builder')
        before = calculate_score(answers, config)
        after = calculate_score(answers, _with_weights(config, 'role', fitter_builder=4))
        assert after == before + 1

    def test_raising_weight_not_held_changes_nothing(self, config):
        answers = make_answers(role='golfer')
        assert calculate_score(answers, _with_weights(config, 'role', creator=9)) == 0.0


class TestBonuses:
    def test_location_bonus(self, config):
        assert score_application(make_answers(city_region='Tempe'), config)['breakdown']['location'] == 1

    def test_blank_invite_code_scores_nothing(self, config):
        assert score_application(make_answers(invite_code='   '), config)['breakdown']['inviteCode'] == 0

    def test_profile_completion_needs_a_percentage(self, config):
        assert score_application(make_answers(), config)['breakdown']['profileCompletion'] == 0

    @pytest.mark.parametrize("percentage,expected", [(80, 1), (100, 1), (79, 0)])
    def test_profile_completion_threshold(self, config, percentage, expected):
        result = score_application(make_answers(profile_completion=percentage), config)
        assert result['breakdown']['profileCompletion'] == expected

    def test_profile_data_enrichment(self, config):
        result = score_application(make_answers(), config, profile_data={'completion_percentage': 90})
        assert result['breakdown']['profileCompletion'] == 1

    def test_equipment_engagement(self, config):
        equipment = {'item_count': 5, 'has_photos': True}
        result = score_application(make_answers(), config, equipment_data=equipment)
        assert result['breakdown']['equipmentEngagement'] == 4

    def test_single_item_without_photos(self, config):
        result = score_application(make_answers(equipment={'item_count': 1, 'has_photos': False}), config)
        assert result['breakdown']['equipmentEngagement'] == 1


class TestRounding:
    def test_rounds_half_up_to_one_decimal(self, config):
        config = _with_weights(config, 'role', fitter_builder=1.25)
        assert calculate_score(make_answers(role='fitter_builder'), config) == 1.3

    def test_round_score(self):
        assert round_score(2.349) == 2.3
        assert round_score(7) == 7.0


class TestAutoApproval:
    def test_below_threshold(self, config):
        assert should_auto_approve(3.9, 0, 150, config) is False

    def test_at_threshold(self, config):
        assert should_auto_approve(4.0, 149, 150, config) is True

    def test_over_capacity(self, config):
        assert should_auto_approve(10.0, 151, 150, config) is False

    def test_effective_capacity_holds_back_buffer(self, config):
        assert effective_capacity(150, config) == 140

    def test_effective_capacity_never_negative(self, config):
        assert effective_capacity(5, config) == 0


class TestProfileCompletion:
    def test_half_complete(self):
        profile = {'display_name': 'Sam', 'bio': 'Lefty', 'location': 'Mesa'}
        assert calculate_profile_completion(profile) == 50

    def test_zero_handicap_counts(self):
        profile = {
            'display_name': 'Sam', 'bio': 'Lefty', 'location': 'Mesa',
            'handicap': 0, 'favorite_club': '7 iron', 'avatar_url': 'https://x/y.png',
        }
        assert calculate_profile_completion(profile) == 100

    def test_empty_profile(self):
        assert calculate_profile_completion({}) == 0


class TestNonFiniteWeights:
    @pytest.mark.parametrize("weight", [float('inf'), float('-inf'), float('nan')])
    def test_non_finite_weight_counts_as_zero(self, config, weight):
        config = _with_weights(config, 'role', fitter_builder=weight)
        result = score_application(make_answers(role='fitter_builder', invite_code='X'), config)
        assert result['breakdown']['role'] == 0
        assert result['cappedTotal'] == 2.0

    def test_non_finite_cap_ignored(self, config):
        config = _with_weights(config, 'shareChannels', cap=float('nan'))
        result = score_application(make_answers(share_channels=['reddit']), config)
        assert result['breakdown']['shareChannels'] == 0

    def test_round_score_non_finite(self):
        assert round_score(float('inf')) == 0.0
