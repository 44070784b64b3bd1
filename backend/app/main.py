from flask import Blueprint, jsonify, request
from app.services.puzzle.modes import get_available_modes

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the Jigsaw Duel game server!'})

@main.route('/modes')
def list_modes():
    multiplayer_only = request.args.get('multiplayer') in ('1', 'true')
    return jsonify([mode.to_dict() for mode in get_available_modes(multiplayer_only)])
