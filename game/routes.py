"""
REST API routes for Epoch Atlas.
Read-only views of regions, periods and saved progress.
"""

import logging
from flask import Blueprint, current_app, jsonify

from config import REGIONS
from periods import get_origin, list_periods
from saves import get_save_manager
from scoring import get_level_tiers

logger = logging.getLogger(__name__)

api = Blueprint('api', __name__, url_prefix='/api')


def _save_manager():
    """Tests and alternative deployments can set app.config['SAVE_MANAGER']"""
    manager = current_app.config.get('SAVE_MANAGER')
    if manager is None:
        manager = get_save_manager()
        current_app.config['SAVE_MANAGER'] = manager
    return manager


# ==================== Health Check ====================

@api.route('/health', methods=['GET'])
def health():
    return jsonify({'status': 'ok'})


# ==================== Regions ====================

@api.route('/regions', methods=['GET'])
def get_regions():
    return jsonify([{
        'region': region,
        'origin': get_origin(region),
        'total_periods': len(list_periods(region)),
    } for region in REGIONS])


@api.route('/regions/<region>/periods', methods=['GET'])
def get_region_periods(region):
    if region not in REGIONS:
        return jsonify({'error': 'Unknown region'}), 404
    return jsonify([period.to_dict() for period in list_periods(region)])


@api.route('/levels', methods=['GET'])
def get_levels():
    return jsonify([tier.to_dict() for tier in get_level_tiers()])


# ==================== Progress ====================

@api.route('/progress/<user_id>', methods=['GET'])
def get_progress(user_id):
    try:
        save = _save_manager().load(user_id)
        if not save:
            return jsonify({'error': 'Progress not found'}), 404
        return jsonify({
            'user_id': user_id,
            'player_name': save.player_name,
            'alias': save.alias,
            'first_round_complete': save.first_round_complete,
            'progress': save.progress.to_dict(),
            'records': save.scoring.to_list(),
            'score': save.scoring.aggregate().to_dict(),
            'level': save.scoring.level().to_dict(),
        })
    except Exception as e:
        logger.error(f"Load progress error: {e}")
        return jsonify({'error': 'Failed to load progress'}), 500


@api.route('/progress/<user_id>', methods=['DELETE'])
def delete_progress(user_id):
    try:
        if not _save_manager().delete(user_id):
            return jsonify({'error': 'Failed to delete progress'}), 500
        return jsonify({'success': True})
    except Exception as e:
        logger.error(f"Delete progress error: {e}")
        return jsonify({'error': 'Failed to delete progress'}), 500
