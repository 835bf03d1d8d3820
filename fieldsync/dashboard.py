from flask import Flask, request, jsonify
from datetime import datetime
import logging

from fieldsync.anchor_log import AnchorLog
from fieldsync.config import Config, configure_logging, load_config
from fieldsync.errors import (
    FieldSyncError,
    OverrideNotAllowedError,
    PositionError,
    SessionBusyError,
    ValidationError,
)
from fieldsync.formatting import format_accuracy, format_coordinate, format_datetime, format_relative
from fieldsync.geocoder import PlaceLookup
from fieldsync.geolocation import GeolocationAcquirer, ReportedFixSource
from fieldsync.models import utc_now
from fieldsync.resolver import anchor_usage
from fieldsync.services.capture_runner import start_capture, start_save_without_location
from fieldsync.services.session_registry import OwnerSession, SessionRegistry
from fieldsync.session import CaptureSessionController
from fieldsync.settings import Preferences, compose_label
from fieldsync.store import JsonAnchorStore

OWNER_HEADER = "X-FieldSync-User"

_ERROR_STATUS = (
    (ValidationError, 400),
    (SessionBusyError, 409),
    (OverrideNotAllowedError, 409),
)


def _parse_time(raw):
    return datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))


def _anchor_payload(anchor, now, places=None, usage=None):
    coord = anchor.coordinate
    payload = {
        "id": anchor.id,
        "label": anchor.label,
        "created_at": anchor.created_at.isoformat(),
        "created_display": format_datetime(anchor.created_at),
        "logged": format_relative(anchor.created_at, now),
        "note": anchor.note,
        "camera_id": anchor.camera_id,
        "coordinate": coord.to_dict() if coord else None,
        "location_available": coord is not None,
    }
    if coord:
        payload["latitude_display"] = format_coordinate(coord.latitude, "lat")
        payload["longitude_display"] = format_coordinate(coord.longitude, "lon")
        payload["accuracy_display"] = format_accuracy(coord.accuracy)
    if places is not None:
        payload["place"] = places.place_name(coord)
    if usage is not None:
        payload["frames"] = usage.get(anchor.id, 0)
    return payload


def _text(data, key, allow_int=False):
    """Text field from a JSON body; None when absent. Raises ValidationError otherwise."""
    value = data.get(key)
    if value is None or isinstance(value, str):
        return value
    if allow_int and isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    raise ValidationError(f"{key} must be text")


def create_app(config: Config = None, gateway=None, preferences=None, places=None, source_factory=None):
    """Build the Flask app. Collaborators default to the configured local ones.

    `source_factory(owner_id)` builds the fix source for a new owner session;
    each owner gets its own so one phone's reports never reach another owner.
    """
    config = config or load_config()
    gateway = gateway if gateway is not None else JsonAnchorStore(config.store_path)
    if source_factory is None:
        def source_factory(owner_id):
            return ReportedFixSource(config.high_accuracy_limit)
    preferences = preferences if preferences is not None else Preferences(config.prefs_path)
    places = places if places is not None else PlaceLookup(config.geocode_cache_path, enabled=config.geocode_enabled)
    def make_session(owner_id: str) -> OwnerSession:
        source = source_factory(owner_id)
        return OwnerSession(
            owner_id=owner_id,
            controller=CaptureSessionController(owner_id, gateway, GeolocationAcquirer(source)),
            log=AnchorLog(gateway, owner_id),
            source=source,
        )

    registry = SessionRegistry(make_session)

    app = Flask(__name__)
    app.extensions["fieldsync"] = {
        "config": config,
        "gateway": gateway,
        "preferences": preferences,
        "places": places,
        "registry": registry,
    }

    def _owner():
        owner = (request.headers.get(OWNER_HEADER) or "").strip()
        return owner or None

    def _session():
        owner = _owner()
        if not owner:
            return None
        return registry.get_or_create(owner)

    def _unauthorized():
        return jsonify({"error": "sign in required"}), 401

    def _state_payload(session: OwnerSession):
        payload = session.controller.state.to_dict()
        payload["can_save_without_location"] = session.controller.can_save_without_location
        return payload

    @app.errorhandler(FieldSyncError)
    def handle_error(exc):
        for cls, status in _ERROR_STATUS:
            if isinstance(exc, cls):
                return jsonify({"error": str(exc)}), status
        logging.exception("Unhandled application error")
        return jsonify({"error": str(exc)}), 500

    @app.route("/api/anchors", methods=["GET"])
    def api_anchors():
        session = _session()
        if session is None:
            return _unauthorized()
        now = utc_now()
        anchors = session.log.anchors
        entries = [_anchor_payload(a, now, places) for a in anchors]
        return jsonify({
            "count": len(entries),
            "anchors": entries,
            "current": entries[0] if entries else None,
            "subscription_failed": session.log.failed,
        })

    @app.route("/api/anchors/clear", methods=["POST"])
    def api_clear():
        session = _session()
        if session is None:
            return _unauthorized()
        data = request.get_json(silent=True) or {}
        removed = session.controller.clear_all(confirm=bool(data.get("confirm")))
        return jsonify({"deleted": removed})

    @app.route("/api/capture", methods=["POST"])
    def api_capture():
        session = _session()
        if session is None:
            return _unauthorized()
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            return jsonify({"error": "JSON object required"}), 400
        prefix = data.get("prefix")
        if isinstance(prefix, str):
            preferences.set_prefix(prefix)
        else:
            prefix = preferences.get_prefix()
        label = _text(data, "label") or compose_label(prefix, _text(data, "digits", allow_int=True) or "")
        note = _text(data, "note") or ""
        camera_id = _text(data, "camera_id", allow_int=True) or None
        start_capture(session.controller, label, note, camera_id)
        return jsonify(_state_payload(session)), 202

    @app.route("/api/capture/state", methods=["GET"])
    def api_capture_state():
        session = _session()
        if session is None:
            return _unauthorized()
        return jsonify(_state_payload(session))

    @app.route("/api/capture/save_without_location", methods=["POST"])
    def api_save_without_location():
        session = _session()
        if session is None:
            return _unauthorized()
        start_save_without_location(session.controller)
        return jsonify(_state_payload(session)), 202

    @app.route("/api/position", methods=["POST"])
    def api_position():
        session = _session()
        if session is None:
            return _unauthorized()
        data = request.get_json(silent=True) or {}
        try:
            coordinate = session.source.report_position(
                float(data["latitude"]),
                float(data["longitude"]),
                float(data["accuracy"]) if data.get("accuracy") is not None else None,
            )
        except (KeyError, TypeError, ValueError) as exc:
            return jsonify({"error": f"invalid position: {exc}"}), 400
        return jsonify({"coordinate": coordinate.to_dict()})

    @app.route("/api/position/error", methods=["POST"])
    def api_position_error():
        session = _session()
        if session is None:
            return _unauthorized()
        data = request.get_json(silent=True) or {}
        code = data.get("code") if isinstance(data, dict) else None
        if code not in PositionError.CODES:
            return jsonify({"error": "code must be one of " + ", ".join(PositionError.CODES)}), 400
        session.source.report_error(code)
        return jsonify({"code": code})

    @app.route("/api/settings/prefix", methods=["GET", "POST"])
    def api_prefix():
        if request.method == "POST":
            data = request.get_json(silent=True) or {}
            prefix = data.get("prefix")
            if not isinstance(prefix, str):
                return jsonify({"error": "prefix required"}), 400
            preferences.set_prefix(prefix)
        return jsonify({"prefix": preferences.get_prefix()})

    @app.route("/api/resolve", methods=["GET"])
    def api_resolve():
        session = _session()
        if session is None:
            return _unauthorized()
        raw_times = request.args.getlist("time")
        if not raw_times:
            return jsonify({"error": "time required"}), 400
        try:
            times = [_parse_time(t) for t in raw_times]
        except ValueError as exc:
            return jsonify({"error": f"invalid time: {exc}"}), 400
        now = utc_now()
        anchors = session.log.anchors
        usage = anchor_usage(anchors, times)
        frames = []
        for t in times:
            res = session.log.resolve(t)
            frames.append({
                "time": t.isoformat(),
                "status": res.status,
                "anchor": _anchor_payload(res.anchor, now, usage=usage) if res.anchor else None,
                "coordinate": res.coordinate.to_dict() if res.coordinate else None,
            })
        return jsonify({"frames": frames, "usage": usage})

    @app.route("/api/sign_out", methods=["POST"])
    def api_sign_out():
        owner = _owner()
        if owner is None:
            return _unauthorized()
        return jsonify({"closed": registry.discard(owner)})

    return app


def main():
    config = load_config()
    configure_logging(config)
    create_app(config).run(host=config.host, port=config.port, debug=False)


if __name__ == "__main__":
    main()
