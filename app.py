"""Flask application with route handlers"""
from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS
import os
import traceback

from config.scoring_config import ScoringConfigLoader
from services import waitlist_service
from services.admin_service import AdminAuthService
from services.scoring_admin_service import ScoringAdminService
from services.scoring_store import ApplicantStore, ConfigStore, EquipmentProvider, HistoryStore, ProfileProvider
from utils.auth import get_bearer_token
from utils.errors import AuthorizationError, UpstreamDataError, ValidationError
from utils.logger import log_error, log_warning
from utils.rate_limit import init_rate_limiter, limiter, RATE_LIMITS

api = Blueprint('api', __name__)


def build_services():
    """Wire the Supabase-backed stores into the loader and admin service"""
    config_store = ConfigStore()
    applicant_store = ApplicantStore()
    loader = ScoringConfigLoader(config_store, HistoryStore())
    return {
        'loader': loader,
        'config_store': config_store,
        'applicant_store': applicant_store,
        'auth': AdminAuthService(),
        'scoring_admin': ScoringAdminService(loader, applicant_store, ProfileProvider(), EquipmentProvider()),
    }


def create_app(services=None, config_overrides=None):
    app = Flask(__name__)
    app.config.update(config_overrides or {})

    origins = os.environ.get('CORS_ORIGINS', 'http://localhost:3000,https://teed.club')
    CORS(app, resources={
        r"/api/*": {
            "origins": [o.strip() for o in origins.split(',') if o.strip()],
            "methods": ["GET", "POST", "PUT", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"],
            "supports_credentials": True
        }
    })

    # Initialize rate limiter
    init_rate_limiter(app)

    app.extensions['teed'] = services or build_services()
    app.register_blueprint(api)
    return app


def _services():
    return current_app.extensions['teed']


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _require_admin():
    return _services()['auth'].require_admin(get_bearer_token())


@api.route('/')
def home():
    return jsonify({
        "message": "Teed.club API",
        "status": "running",
        "version": "1.0.0"
    })


@api.route('/health')
@limiter.exempt
def health_check():
    return jsonify({
        "status": "healthy",
        "message": "API is running successfully"
    })


@api.route('/api/waitlist', methods=['POST'])
@limiter.limit(RATE_LIMITS['strict'])
def submit_waitlist_application():
    """Score a waitlist application and auto-approve it when it qualifies"""
    try:
        caller = None
        token = get_bearer_token()
        if token:
            try:
                caller = _services()['auth'].verify_token(token)
            except AuthorizationError:
                # Submitting does not require an account
                caller = None

        data = request.get_json(silent=True)
        if not data:
            return jsonify({"error": "No data provided"}), 400

        services = _services()
        result = waitlist_service.submit_application(
            data, services['loader'], services['applicant_store'], services['config_store'], caller=caller
        )
        return jsonify(result), 200
    except ValidationError as e:
        return jsonify({"error": str(e), "errors": e.errors}), 400
    except UpstreamDataError as e:
        log_error("Error in submit_waitlist_application", error=e)
        return jsonify({"error": "Failed to process application"}), 502
    except Exception as e:
        log_error("Error in submit_waitlist_application", error=e, traceback_str=traceback.format_exc())
        return jsonify({"error": "Internal server error"}), 500


@api.route('/api/admin/scoring-config', methods=['GET'])
@limiter.limit(RATE_LIMITS['standard'])
def get_scoring_config():
    """Current scoring config, its source and optional pending-application statistics"""
    try:
        _require_admin()
        include_stats = request.args.get('includeStats', '').lower() == 'true'
        return jsonify(_services()['scoring_admin'].get_config(include_stats=include_stats)), 200
    except AuthorizationError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        log_error("Error in get_scoring_config", error=e, traceback_str=traceback.format_exc())
        return jsonify({"error": "Failed to retrieve configuration"}), 500


@api.route('/api/admin/scoring-config', methods=['PUT'])
@limiter.limit(RATE_LIMITS['moderate'])
def update_scoring_config():
    """Apply a partial config and/or a new auto-approval threshold"""
    try:
        user = _require_admin()
        data = _json_body()
        result = _services()['scoring_admin'].update_config(
            data.get('config'),
            threshold=data.get('threshold'),
            reason=data.get('reason'),
            updated_by=user['id'],
        )
        if not result['historyLogged']:
            log_warning(f"Scoring config {result['config']['version']} saved without a history entry")
        return jsonify(result), 200
    except AuthorizationError as e:
        return jsonify({"error": str(e)}), e.status_code
    except ValidationError as e:
        return jsonify({"error": str(e), "errors": e.errors}), 400
    except UpstreamDataError as e:
        log_error("Error in update_scoring_config", error=e)
        return jsonify({"error": "Failed to update configuration"}), 502
    except Exception as e:
        log_error("Error in update_scoring_config", error=e, traceback_str=traceback.format_exc())
        return jsonify({"error": "Failed to update configuration"}), 500


@api.route('/api/admin/scoring-config/test', methods=['POST'])
@limiter.limit(RATE_LIMITS['moderate'])
def test_scoring():
    """Score one application (optionally under a trial config) without persisting"""
    try:
        _require_admin()
        data = _json_body()
        result = _services()['scoring_admin'].test_scoring(
            answers=data.get('answers'),
            test_config=data.get('testConfig'),
            include_profile=bool(data.get('includeProfile', False)),
            include_equipment=bool(data.get('includeEquipment', False)),
            application_id=data.get('applicationId'),
        )
        return jsonify(result), 200
    except AuthorizationError as e:
        return jsonify({"error": str(e)}), e.status_code
    except ValidationError as e:
        return jsonify({"error": str(e), "errors": e.errors}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 404
    except Exception as e:
        log_error("Error in test_scoring", error=e, traceback_str=traceback.format_exc())
        return jsonify({"error": "Failed to test scoring"}), 500


@api.route('/api/admin/scoring-config/simulate', methods=['POST'])
@limiter.limit(RATE_LIMITS['strict'])
def simulate_scoring():
    """Compare current and trial configs across pending applications"""
    try:
        _require_admin()
        data = _json_body()
        result = _services()['scoring_admin'].simulate(
            data.get('testConfig'),
            test_threshold=data.get('testThreshold'),
            sample_size=data.get('sampleSize'),
        )
        return jsonify(result), 200
    except AuthorizationError as e:
        return jsonify({"error": str(e)}), e.status_code
    except ValidationError as e:
        return jsonify({"error": str(e), "errors": e.errors}), 400
    except UpstreamDataError as e:
        log_error("Error in simulate_scoring", error=e)
        return jsonify({"error": "Failed to run simulation"}), 502
    except Exception as e:
        log_error("Error in simulate_scoring", error=e, traceback_str=traceback.format_exc())
        return jsonify({"error": "Failed to run simulation"}), 500


@api.route('/api/admin/scoring-config/reset', methods=['POST'])
@limiter.limit(RATE_LIMITS['moderate'])
def reset_scoring_config():
    """Restore the default weight table"""
    try:
        user = _require_admin()
        return jsonify(_services()['scoring_admin'].reset(updated_by=user['id'])), 200
    except AuthorizationError as e:
        return jsonify({"error": str(e)}), e.status_code
    except UpstreamDataError as e:
        log_error("Error in reset_scoring_config", error=e)
        return jsonify({"error": "Failed to reset configuration"}), 502
    except Exception as e:
        log_error("Error in reset_scoring_config", error=e, traceback_str=traceback.format_exc())
        return jsonify({"error": "Failed to reset configuration"}), 500


app = create_app()

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    debug = os.environ.get('FLASK_ENV') == 'development'
    app.run(host='0.0.0.0', port=port, debug=debug)
