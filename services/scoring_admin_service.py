"""Operator-facing scoring config operations: get, update, test, simulate, reset"""
import copy
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from config.scoring_config import merge_config, validate_config
from services.scoring_engine import round_score, score_application
from utils.errors import UpstreamDataError, ValidationError
from utils.logger import log_error, log_info
from utils.validation import validate_integer, validate_number

MAX_THRESHOLD = 10
DEFAULT_SIMULATION_SAMPLE = 100
MAX_SIMULATION_SAMPLE = 500
SIMULATION_CHANGES_RETURNED = 10


class ScoringAdminService:
    """Admin scoring operations over an injected loader and stores"""

    def __init__(self, loader, applicant_store, profile_provider=None, equipment_provider=None):
        self.loader = loader
        self.applicant_store = applicant_store
        self.profile_provider = profile_provider
        self.equipment_provider = equipment_provider

    def get_config(self, include_stats: bool = False) -> Dict[str, Any]:
        config = self.loader.get_config()
        response = {
            'config': config,
            'source': self.loader.source.value,
        }
        if include_stats:
            statistics = self.get_statistics(config)
            if statistics is not None:
                response['statistics'] = statistics
        return response

    def get_statistics(self, config: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Re-score every pending application under config. None when the store is unavailable."""
        try:
            applications = self.applicant_store.select_pending()
        except Exception as e:
            log_error("Failed to load pending applications for statistics", error=e)
            return None

        scores = [score_application(app.get('answers') or {}, config)['cappedTotal'] for app in applications]
        threshold = config['autoApproval']['threshold']
        distribution = Counter(scores)

        return {
            'pendingApplications': len(scores),
            'averageScore': round_score(sum(scores) / len(scores)) if scores else 0.0,
            'scoreDistribution': {str(score): distribution[score] for score in sorted(distribution)},
            'wouldAutoApprove': len([s for s in scores if s >= threshold]),
        }

    def update_config(self, config_patch: Optional[Dict[str, Any]], threshold: Any = None,
                      reason: Optional[str] = None, updated_by: Optional[str] = None) -> Dict[str, Any]:
        if not config_patch and threshold is None:
            raise ValidationError("No configuration changes provided")

        if config_patch is not None and not isinstance(config_patch, dict):
            raise ValidationError("'config' must be an object")

        patch = copy.deepcopy(config_patch) if config_patch else {}
        if threshold is not None:
            if validate_number(threshold, 0, MAX_THRESHOLD) is None:
                raise ValidationError(f"Threshold must be between 0 and {MAX_THRESHOLD}")
            auto_approval = patch.get('autoApproval') or {}
            if not isinstance(auto_approval, dict):
                raise ValidationError("'autoApproval' must be an object")
            patch['autoApproval'] = {**auto_approval, 'threshold': threshold}

        result = self.loader.update_config(patch, updated_by=updated_by, reason=reason)
        message = 'Configuration updated successfully'
        if not result['history_logged']:
            message += ' (change history could not be recorded)'

        return {
            'success': True,
            'config': result['config'],
            'threshold': result['threshold'],
            'historyLogged': result['history_logged'],
            'message': message,
        }

    def reset(self, updated_by: Optional[str] = None) -> Dict[str, Any]:
        result = self.loader.reset_to_default(updated_by)
        log_info(f"Scoring config reset to defaults by {updated_by or 'system'}")
        return {
            'success': True,
            'config': result['config'],
            'historyLogged': result['history_logged'],
            'message': 'Configuration reset to defaults',
        }

    def _trial_config(self, current: Dict[str, Any], test_config: Dict[str, Any]) -> Dict[str, Any]:
        """Merge a trial patch onto the live config without persisting or bumping the version"""
        trial = merge_config(current, test_config)
        errors = validate_config(trial)
        if errors:
            raise ValidationError("Invalid test configuration", errors)
        trial['version'] = current.get('version')
        trial['metadata'] = {**(current.get('metadata') or {}), 'description': 'Trial configuration'}
        return trial

    def test_scoring(self, answers: Optional[Dict[str, Any]] = None, test_config: Optional[Dict[str, Any]] = None,
                     include_profile: bool = False, include_equipment: bool = False,
                     application_id: Optional[str] = None) -> Dict[str, Any]:
        """Score one set of answers, optionally under a trial config. Nothing is persisted."""
        if answers is None and application_id:
            application = self.applicant_store.select_by_id(application_id)
            if not application:
                raise ValueError("Application not found")
            answers = {**(application.get('answers') or {}), 'email': application.get('email')}

        if not isinstance(answers, dict):
            raise ValidationError("Answers required for testing")

        current = self.loader.get_config()
        if test_config is not None:
            if not isinstance(test_config, dict):
                raise ValidationError("'testConfig' must be an object")
            config = self._trial_config(current, test_config)
            source = 'test'
        else:
            config = current
            source = self.loader.source.value

        profile_data = None
        equipment_data = None
        if include_profile and self.profile_provider:
            profile_data = self.profile_provider.fetch_profile(answers.get('email'))
        if include_equipment and self.equipment_provider and profile_data and profile_data.get('user_id'):
            equipment_data = self.equipment_provider.fetch_equipment(profile_data['user_id'])

        result = score_application(answers, config, profile_data=profile_data, equipment_data=equipment_data)

        response = {
            'score': result['cappedTotal'],
            'total': result['total'],
            'breakdown': result['breakdown'],
            'metadata': {
                'configVersion': config.get('version'),
                'configSource': source,
                'scoredAt': datetime.now(timezone.utc).isoformat(),
                'autoApproveEligible': result['cappedTotal'] >= config['autoApproval']['threshold'],
                'profileCompletionPercentage': (profile_data or {}).get('completion_percentage'),
                'equipmentCount': (equipment_data or {}).get('item_count'),
            },
        }
        if include_profile:
            response['profileData'] = profile_data
        if include_equipment:
            response['equipmentData'] = equipment_data
        return response

    def simulate(self, test_config: Optional[Dict[str, Any]], test_threshold: Any = None,
                 sample_size: Any = None) -> Dict[str, Any]:
        """Compare current and trial configs across a sample of pending applications"""
        if not isinstance(test_config, dict):
            raise ValidationError("Test configuration required")

        if test_threshold is not None and validate_number(test_threshold, 0, MAX_THRESHOLD) is None:
            raise ValidationError(f"Threshold must be between 0 and {MAX_THRESHOLD}")

        sample_size = validate_integer(
            sample_size if sample_size is not None else DEFAULT_SIMULATION_SAMPLE,
            min_value=1, max_value=MAX_SIMULATION_SAMPLE,
        ) or DEFAULT_SIMULATION_SAMPLE

        current = self.loader.get_config()
        trial = self._trial_config(current, test_config)
        current_threshold = current['autoApproval']['threshold']
        new_threshold = test_threshold if test_threshold is not None else trial['autoApproval']['threshold']

        try:
            applications = self.applicant_store.select_pending(sample_size)
        except Exception as e:
            raise UpstreamDataError("Failed to fetch applications", operation='simulate') from e

        changes: List[Dict[str, Any]] = []
        for app in applications:
            answers = app.get('answers') or {}
            current_score = score_application(answers, current)['cappedTotal']
            new_score = score_application(answers, trial)['cappedTotal']
            changes.append({
                'email': app.get('email'),
                'currentScore': current_score,
                'newScore': new_score,
                'scoreDiff': round_score(new_score - current_score),
                'currentAutoApprove': current_score >= current_threshold,
                'newAutoApprove': new_score >= new_threshold,
            })

        statistics = {
            'totalApplications': len(changes),
            'averageScoreChange': round_score(sum(c['scoreDiff'] for c in changes) / len(changes)) if changes else 0.0,
            'currentAutoApproveCount': len([c for c in changes if c['currentAutoApprove']]),
            'newAutoApproveCount': len([c for c in changes if c['newAutoApprove']]),
            'gainedAutoApproval': len([c for c in changes if not c['currentAutoApprove'] and c['newAutoApprove']]),
            'lostAutoApproval': len([c for c in changes if c['currentAutoApprove'] and not c['newAutoApprove']]),
        }

        return {
            'simulation': {
                'sampleSize': len(changes),
                'changes': changes[:SIMULATION_CHANGES_RETURNED],
                'statistics': statistics,
            }
        }
