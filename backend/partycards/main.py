from flask import Blueprint, jsonify, current_app

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the Party Cards server!'})


@main.route('/health')
def health():
    synchronizer = current_app.extensions['synchronizer']
    return jsonify({'status': 'healthy', 'transport': synchronizer.transport})
