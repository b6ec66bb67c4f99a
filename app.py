from __future__ import annotations

import os
from datetime import timedelta
from secrets import token_hex
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv
from flask import Flask, flash, redirect, render_template, request, url_for
from flask_login import (
    LoginManager,
    current_user,
    login_required,
    login_user,
    logout_user,
)
from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from auth import Authenticator, PasswordHasher
from errors import (
    AuthFailure,
    DuplicateAccount,
    MailDeliveryFailure,
    NotFound,
    PasswordMismatch,
    PersistenceError,
    TokenInvalidOrExpired,
    ValidationError,
)
from mail import LogMailer, Mailer, SMTPMailer
from models import CredentialStore, SessionStore, User
from reset_flow import ResetFlow
from tokens import TokenIssuer
from validation import validate_account_update, validate_registration


def _as_bool(value: Any) -> bool:
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def load_config() -> Dict[str, Any]:
    load_dotenv()
    return {
        "SECRET_KEY": os.environ.get("FLASK_SECRET_KEY", token_hex(32)),
        "MONGODB_URI": os.environ.get("MONGODB_URI", "mongodb://127.0.0.1:27017/delicious_stores"),
        "MONGODB_DB_NAME": os.environ.get("MONGODB_DB_NAME", "delicious_stores"),
        "MAIL_HOST": os.environ.get("MAIL_HOST", ""),
        "MAIL_PORT": int(os.environ.get("MAIL_PORT", "587")),
        "MAIL_USERNAME": os.environ.get("MAIL_USERNAME"),
        "MAIL_PASSWORD": os.environ.get("MAIL_PASSWORD"),
        "MAIL_SENDER": os.environ.get("MAIL_SENDER", "Delicious Stores <noreply@delicious-stores.io>"),
        "MAIL_USE_TLS": _as_bool(os.environ.get("MAIL_USE_TLS", "true")),
        "MAIL_TIMEOUT": float(os.environ.get("MAIL_TIMEOUT", "10")),
        "RESET_TOKEN_TTL_SECONDS": int(os.environ.get("RESET_TOKEN_TTL_SECONDS", "3600")),
        "PASSWORD_HASH_METHOD": os.environ.get("PASSWORD_HASH_METHOD") or None,
    }


def build_mailer(config: Mapping[str, Any]) -> Mailer:
    if not config.get("MAIL_HOST"):
        return LogMailer()
    return SMTPMailer(
        host=config["MAIL_HOST"],
        port=config["MAIL_PORT"],
        sender=config.get("MAIL_SENDER"),
        username=config.get("MAIL_USERNAME"),
        password=config.get("MAIL_PASSWORD"),
        use_tls=config.get("MAIL_USE_TLS", True),
        timeout=config.get("MAIL_TIMEOUT", 10),
    )


def create_app(
    test_config: Optional[Mapping[str, Any]] = None,
    db: Optional[Database] = None,
    mailer: Optional[Mailer] = None,
) -> Flask:
    app = Flask(__name__)
    app.config.update(load_config())
    if test_config:
        app.config.update(test_config)

    if db is None:
        mongo_client = MongoClient(app.config["MONGODB_URI"])
        db = mongo_client[app.config["MONGODB_DB_NAME"]]

    store = CredentialStore(db)
    sessions = SessionStore(db)
    authenticator = Authenticator(store, sessions, PasswordHasher(app.config.get("PASSWORD_HASH_METHOD")))
    issuer = TokenIssuer(store, ttl=timedelta(seconds=app.config["RESET_TOKEN_TTL_SECONDS"]))
    reset_flow = ResetFlow(store, issuer, authenticator, mailer or build_mailer(app.config))
    app.extensions["accounts"] = {
        "store": store,
        "sessions": sessions,
        "authenticator": authenticator,
        "reset_flow": reset_flow,
    }

    try:
        store.ensure_indexes()
        sessions.ensure_indexes()
    except PyMongoError as exc:  # pragma: no cover - best effort startup
        app.logger.warning("Unable to prepare MongoDB collections: %s", exc)

    login_manager = LoginManager(app)
    login_manager.login_view = "login"
    login_manager.login_message = "Oops! You must be logged in to do that"
    login_manager.login_message_category = "error"

    @login_manager.user_loader
    def load_user(session_id: str) -> Optional[User]:
        try:
            return authenticator.user_for_session(session_id)
        except PersistenceError:
            app.logger.exception("Unable to load session %s", session_id)
            return None

    @app.errorhandler(PersistenceError)
    def handle_persistence_error(exc: PersistenceError):
        # Standalone page: anything reading current_user could fail again.
        app.logger.exception("Database failure while handling %s", request.path)
        return render_template("error.html", message=exc.message), 503

    def start_session(user: User) -> None:
        # user.session_id is set by the authenticator; Flask-Login keeps only that id
        login_user(user)

    @app.route("/")
    def index():
        return render_template("index.html")

    @app.route("/login", methods=["GET", "POST"])
    def login():
        if current_user.is_authenticated:
            return redirect(url_for("index"))
        if request.method == "POST":
            email = request.form.get("email", "")
            password = request.form.get("password", "")
            try:
                session = authenticator.authenticate(email, password)
            except AuthFailure as exc:
                flash(exc.message, "error")
                return redirect(url_for("login"))
            start_session(authenticator.user_for_session(session.id))
            flash("You are now logged in", "success")
            next_page = request.args.get("next")
            if not next_page or not next_page.startswith("/") or next_page.startswith("//"):
                next_page = url_for("index")
            return redirect(next_page)
        return render_template("login.html")

    @app.route("/logout")
    def logout():
        if current_user.is_authenticated:
            authenticator.logout(current_user.get_id())
        logout_user()
        flash("You are now logged out!", "success")
        return redirect(url_for("index"))

    @app.route("/register", methods=["GET", "POST"])
    def register():
        if current_user.is_authenticated:
            return redirect(url_for("index"))
        if request.method == "POST":
            result = validate_registration(request.form)
            if not result.ok:
                for message in result.errors:
                    flash(message, "error")
                return render_template("register.html", body=request.form)
            try:
                user = store.create_user(
                    result.data["name"],
                    result.data["email"],
                    authenticator.set_password(result.data["password"]),
                )
            except DuplicateAccount as exc:
                flash(exc.message, "error")
                return render_template("register.html", body=request.form)
            authenticator.login(user)
            start_session(user)
            app.logger.info("Registered user %s", user.id)
            flash("Welcome! Your account has been created.", "success")
            return redirect(url_for("index"))
        return render_template("register.html", body={})

    @app.route("/account", methods=["GET", "POST"])
    @login_required
    def account():
        if request.method == "POST":
            result = validate_account_update(request.form)
            if not result.ok:
                for message in result.errors:
                    flash(message, "error")
                return redirect(url_for("account"))
            try:
                store.update_account(current_user.mongo_id, result.data["name"], result.data["email"])
            except DuplicateAccount as exc:
                flash(exc.message, "error")
                return redirect(url_for("account"))
            flash("Updated your account", "success")
            return redirect(url_for("account"))
        return render_template("account.html", user=current_user)

    @app.route("/account/forgot", methods=["POST"])
    def forgot():
        email = request.form.get("email", "")
        try:
            reset_flow.forgot(email, lambda token: url_for("reset", token=token, _external=True))
        except (NotFound, MailDeliveryFailure) as exc:
            flash(exc.message, "error")
        else:
            flash("A password reset link has been emailed.", "success")
        return redirect(url_for("login"))

    @app.route("/account/reset/<token>", methods=["GET", "POST"])
    def reset(token: str):
        if request.method == "GET":
            try:
                reset_flow.validate_token(token)
            except TokenInvalidOrExpired as exc:
                flash(exc.message, "error")
                return redirect(url_for("login"))
            return render_template("reset.html", token=token)
        try:
            user, _ = reset_flow.update(
                token,
                None,
                request.form.get("password", ""),
                request.form.get("password-confirm", ""),
            )
        except PasswordMismatch as exc:
            flash(exc.message, "error")
            return redirect(url_for("reset", token=token))
        except ValidationError as exc:
            for message in exc.errors:
                flash(message, "error")
            return redirect(url_for("reset", token=token))
        except TokenInvalidOrExpired as exc:
            flash(exc.message, "error")
            return redirect(url_for("login"))
        if current_user.is_authenticated:
            authenticator.logout(current_user.get_id())
        start_session(user)
        flash("Nice! Your password has been reset. You are now logged in", "success")
        return redirect(url_for("index"))

    return app


if __name__ == "__main__":
    create_app().run(debug=True, host="0.0.0.0", port=5000)
