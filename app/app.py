import io
import json

from flask import Blueprint, Flask, current_app, jsonify, request, send_file
from flask_cors import CORS
from flask_jwt_extended import JWTManager, jwt_required, unset_jwt_cookies
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from pydantic import ValidationError

from config import Config
from database import db
from entitlements import EntitlementCache
from errors import MediaVaultError
from item_store import ItemStore
from logger import get_logger, setup_logging
from object_store import FilesystemObjectStore
from quota import QuotaLimits, QuotaPolicy
from resource_manager import ResourceManager
from schemas import ItemUpdate, VaultCreate, VaultUpdate, parse_item_metadata
from sessions import current_owner_id
from vault_store import VaultStore

logger = get_logger(__name__)

api = Blueprint('api', __name__)
jwt = JWTManager()
migrate = Migrate()
limiter = Limiter(get_remote_address, default_limits=["100 per minute"])


def _manager():
    return current_app.extensions['mediavault']


def _json(model, status=200):
    return jsonify(model.model_dump(mode='json')), status


@api.route('/vaults/', methods=['POST'])
@limiter.limit("10 per minute")
def create_vault():
    owner_id = current_owner_id()
    payload = VaultCreate.model_validate(request.get_json(silent=True) or {})
    return _json(_manager().create_vault(owner_id, payload), 201)

@api.route('/vaults/', methods=['GET'])
def list_vaults():
    owner_id = current_owner_id()
    vaults = _manager().list_vaults(owner_id)
    return jsonify([v.model_dump(mode='json') for v in vaults])

@api.route('/vaults/<vault_id>', methods=['GET'])
def get_vault(vault_id):
    owner_id = current_owner_id()
    return _json(_manager().get_vault(owner_id, vault_id))

@api.route('/vaults/<vault_id>', methods=['PATCH'])
def update_vault(vault_id):
    owner_id = current_owner_id()
    payload = VaultUpdate.model_validate(request.get_json(silent=True) or {})
    return _json(_manager().update_vault(owner_id, vault_id, payload))

@api.route('/vaults/<vault_id>', methods=['DELETE'])
@limiter.limit("10 per minute")
def delete_vault(vault_id):
    owner_id = current_owner_id()
    # A PartialDeleteFailure surfaces through the error handler as a 207
    report = _manager().delete_vault(owner_id, vault_id)
    return jsonify({'status': 'success', **report.to_dict()}), 200

@api.route('/vaults/<vault_id>/items', methods=['GET'])
def list_items(vault_id):
    owner_id = current_owner_id()
    items = _manager().list_items(owner_id, vault_id)
    return jsonify([i.model_dump(mode='json') for i in items])

@api.route('/vaults/<vault_id>/items', methods=['POST'])
@limiter.limit("30 per minute")
def upload_item(vault_id):
    owner_id = current_owner_id()
    upload = request.files.get('encrypted_data')
    if upload is None:
        return jsonify({'error': 'encrypted_data file is required'}), 400
    metadata = parse_item_metadata(request.form.get('metadata', ''))
    item = _manager().add_item(owner_id, vault_id, metadata, upload.read())
    return _json(item, 201)

@api.route('/vaults/<vault_id>/quota', methods=['GET'])
def check_quota(vault_id):
    """Ask before a capture starts whether its result could be stored."""
    owner_id = current_owner_id()
    manager = _manager()
    manager.get_vault(owner_id, vault_id)
    size = request.args.get('size', 0, type=int)
    return _json(manager.check_quota(owner_id, request.args.get('type', ''), size))

@api.route('/items/<item_id>', methods=['GET'])
def get_item(item_id):
    owner_id = current_owner_id()
    if request.args.get('download') == 'true':
        item, data = _manager().read_item_blob(owner_id, item_id)
        return send_file(
            io.BytesIO(data),
            mimetype='application/octet-stream',
            as_attachment=True,
            download_name=f"encrypted_{item.filename}"
        )
    return _json(_manager().get_item(owner_id, item_id))

@api.route('/items/<item_id>', methods=['PATCH'])
def update_item(item_id):
    owner_id = current_owner_id()
    payload = ItemUpdate.model_validate(request.get_json(silent=True) or {})
    return _json(_manager().update_item(owner_id, item_id, payload))

@api.route('/items/<item_id>', methods=['DELETE'])
def delete_item(item_id):
    owner_id = current_owner_id()
    _manager().delete_item(owner_id, item_id)
    return jsonify({'status': 'success', 'item_id': item_id}), 200

@api.route('/usage/', methods=['GET'])
def usage():
    owner_id = current_owner_id()
    return jsonify(_manager().usage_summary(owner_id))

@api.route('/logout/', methods=['POST'])
def logout():
    response = jsonify({'message': 'Logged out'})
    unset_jwt_cookies(response)
    return response, 200

@api.route('/check-session', methods=['GET'])
@jwt_required()
def check_session():
    return jsonify({'status': 'valid'}), 200


def handle_domain_error(error):
    if error.status_code >= 500:
        logger.error("%s: %s", error.__class__.__name__, error.message)
    return jsonify(error.to_dict()), error.status_code

def handle_validation_error(error):
    return jsonify({'error': 'Invalid request', 'details': json.loads(error.json(include_url=False))}), 400

def add_security_headers(response):
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains; preload"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Referrer-Policy"] = "no-referrer"
    response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
    return response


def build_resource_manager(config, entitlements=None):
    blobs = FilesystemObjectStore(config['BLOB_ROOT'])
    if entitlements is None:
        entitlements = EntitlementCache(config['ENTITLEMENT_MAX_AGE'])
    return ResourceManager(
        VaultStore(blobs),
        ItemStore(blobs),
        QuotaPolicy(QuotaLimits.from_config(config)),
        entitlements,
        capture_max_seconds=config['CAPTURE_MAX_SECONDS'],
    )


def create_app(overrides=None, entitlements=None):
    """Build the app.

    ``entitlements`` is the EntitlementCache the billing poller writes to via
    ``update(owner_id, tier)``. Without one the app starts with an empty cache
    and every quota-gated write is denied until the poller reports a tier.
    """
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    setup_logging(app.config['LOG_LEVEL'], app.config['LOG_DIR'])

    jwt.init_app(app)

    # Define allowed origins
    base_url = app.config['BASE_URL']
    origins = [base_url, 'http://localhost:5000', 'http://127.0.0.1:5000']
    if app.config['DEBUG']:
        origins.append('*')
    CORS(app, resources={r"/*": {"origins": origins}}, supports_credentials=True)

    limiter.init_app(app)
    db.init_app(app)
    migrate.init_app(app, db)

    with app.app_context():
        db.create_all()

    app.extensions['mediavault'] = build_resource_manager(app.config, entitlements)

    app.register_blueprint(api)
    app.register_error_handler(MediaVaultError, handle_domain_error)
    app.register_error_handler(ValidationError, handle_validation_error)
    app.after_request(add_security_headers)

    logger.info("Starting server with %s, and debug mode set to %s", base_url, app.config['DEBUG'])
    return app


if __name__ == '__main__':
    app = create_app()
    app.run(debug=app.config['DEBUG'])
