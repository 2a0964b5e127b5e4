from flask import Blueprint, jsonify, request
from .identity import get_or_create_identity

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the Finger Race server!'})

@main.route('/api/identity', methods=['POST', 'OPTIONS'])
def identity():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    return jsonify({'identity': get_or_create_identity()})
