# routes/auth.py

from flask import Blueprint, jsonify, request, current_app
from flask_login import login_user, logout_user

from logging_config import security_logger
from mail_database import Token
from services.auth_service import (
    AuthenticationError,
    SignupDisabledError,
    UserExistsError,
    InvalidTokenError
)
from routes.api_utils import json_body, message, invalid_parameters
from utils.validators import is_valid_email, clean_str, MIN_PASSWORD_LENGTH

auth_bp = Blueprint('auth', __name__, url_prefix='/api')


def _password_errors(password, field, errors):
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        errors[field] = f"Must be at least {MIN_PASSWORD_LENGTH} character long"


@auth_bp.route('/signup', methods=['POST'])
def signup():
    """Create an account and log it in"""
    auth_service = current_app.services.get('auth')
    if not auth_service.enable_signup:
        return message("Sign up is disabled.", 403)

    data = json_body()
    if data is None:
        return message("Invalid parameters, please try again.", 422)

    email = clean_str(data.get('email'))
    password = data.get('password')
    errors = {}
    if not is_valid_email(email):
        errors['email'] = "Invalid email format"
    _password_errors(password, 'password', errors)
    if errors:
        return invalid_parameters(errors)

    try:
        user = auth_service.signup(email, password)
    except SignupDisabledError:
        return message("Sign up is disabled.", 403)
    except UserExistsError:
        return message("Unable to create an account.", 403)
    except Exception as e:
        current_app.logger.error(f"Error signing up: {e}", exc_info=True)
        return message("Unable to create an account.", 403)

    login_user(user)
    return jsonify({'user': user.to_dict()}), 200


@auth_bp.route('/authenticate', methods=['POST'])
def authenticate():
    data = json_body()
    if data is None:
        return invalid_parameters()

    username = clean_str(data.get('username'))
    password = data.get('password')
    if not username or not isinstance(password, str) or not password:
        return invalid_parameters()

    auth_service = current_app.services.get('auth')
    try:
        user = auth_service.authenticate(username, password, ip_address=request.remote_addr)
    except AuthenticationError:
        return message("Invalid credentials.", 403)

    login_user(user)
    return jsonify({'user': user.to_dict()}), 200


@auth_bp.route('/logout', methods=['POST'])
def logout():
    logout_user()
    return message("You have been successfully logged out.", 200)


@auth_bp.route('/forgot-password', methods=['POST'])
def forgot_password():
    data = json_body()
    if data is None:
        return message("Invalid parameters, please try again.", 422)

    email = clean_str(data.get('email'))
    if not is_valid_email(email):
        return invalid_parameters({'email': "Invalid email format"})

    try:
        current_app.services.get('auth').forgot_password(email)
    except Exception as e:
        current_app.logger.error(f"Error issuing password reset: {e}", exc_info=True)
        return message("Unable to send the reset link, please try again.", 500)

    return message("Email will be sent to you with the information on how to update your password.", 200)


@auth_bp.route('/forgot-password/<token>', methods=['PUT'])
def reset_password(token):
    data = json_body()
    if data is None:
        return message("Invalid parameters, please try again.", 422)

    errors = {}
    _password_errors(data.get('password'), 'password', errors)
    if errors:
        return invalid_parameters(errors)

    try:
        current_app.services.get('auth').reset_password(token, data['password'])
    except InvalidTokenError:
        security_logger.log_token_rejected(Token.TYPE_FORGOT_PASSWORD, request.remote_addr)
        return message("The forgot password token is invalid or has expired.", 403)

    return message("Your password has been updated successfully.", 200)


@auth_bp.route('/verify-email/<token>', methods=['PUT'])
def verify_email(token):
    try:
        current_app.services.get('auth').verify_email(token)
    except InvalidTokenError:
        security_logger.log_token_rejected(Token.TYPE_VERIFY_EMAIL, request.remote_addr)
        return message("The verification token is invalid or has expired.", 403)

    return message("Your email has been verified.", 200)
