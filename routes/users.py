# routes/users.py

from flask import Blueprint, jsonify, current_app
from flask_login import login_required, current_user

from services.auth_service import AuthenticationError
from routes.api_utils import json_body, message, invalid_parameters
from utils.validators import MIN_PASSWORD_LENGTH

users_bp = Blueprint('users', __name__, url_prefix='/api/users')


@users_bp.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify(current_user.to_dict()), 200


@users_bp.route('/password', methods=['POST'])
@login_required
def change_password():
    data = json_body()
    if data is None:
        return invalid_parameters()

    password = data.get('password')
    new_password = data.get('new_password')
    errors = {}
    if not isinstance(password, str) or not password:
        errors['password'] = "This field is required"
    if not isinstance(new_password, str) or len(new_password) < MIN_PASSWORD_LENGTH:
        errors['new_password'] = f"Must be at least {MIN_PASSWORD_LENGTH} character long"
    if errors:
        return invalid_parameters(errors)

    try:
        current_app.services.get('auth').change_password(current_user, password, new_password)
    except AuthenticationError:
        return message("The password that you entered is incorrect.", 403)

    return message("Your password was updated successfully.", 200)
