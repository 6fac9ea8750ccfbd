"""HTTP routes for generating, using and inspecting the attested key."""
from __future__ import annotations

from typing import Any, Dict, Tuple

from flask import jsonify, request

from .algorithms import Algorithm, DigestSize, SelectedAlgorithm
from .attestation import (
    app_signing_digests,
    challenge_matches,
    find_roots_of_trust,
    record_to_json,
)
from .config import app, get_key_manager
from .jwt import verify_token
from .keystore import KeyManager, certificate_chain_pem
from .signature import HardwareUnavailable, NoSuchKey, SignerError
from .utils import b64decode, b64encode

Result = Tuple[Dict[str, Any], int]


def _signature_text(signature: bytes) -> str:
    return b64encode(signature, padding=False)


def _run(action, description: str) -> Result:
    try:
        return action(get_key_manager()), 200
    except NoSuchKey:
        return {"error": "No key has been generated yet."}, 404
    except HardwareUnavailable as exc:
        return {"error": str(exc)}, 503
    except SignerError as exc:
        app.logger.exception("Failed to %s: %s", description, exc)
        return {"error": f"Unable to {description}."}, 500
    except ValueError as exc:
        return {"error": str(exc)}, 422
    except Exception as exc:  # pylint: disable=broad-except
        app.logger.exception("Failed to %s: %s", description, exc)
        return {"error": f"Unable to {description}."}, 500


def _json_payload():
    if not request.is_json:
        return None
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


@app.route("/api/algorithms", methods=["GET"])
def api_algorithms():
    manager = get_key_manager()
    return jsonify(
        {
            "algorithms": [algorithm.display_name for algorithm in Algorithm],
            "digestSizes": [size.value for size in DigestSize],
            "hasStrongBox": manager.has_strongbox,
        }
    )


@app.route("/api/keys", methods=["POST"])
def api_generate_key():
    payload = _json_payload()
    if payload is None:
        return jsonify({"error": "Expected JSON payload."}), 400

    algorithm_name = payload.get("algorithm")
    if not isinstance(algorithm_name, str) or not algorithm_name.strip():
        return jsonify({"error": "Algorithm must be provided."}), 400
    digest_size = payload.get("digestSize", DigestSize.SHA256.value)

    def generate(manager: KeyManager) -> Dict[str, Any]:
        try:
            size = DigestSize(int(digest_size))
        except (TypeError, ValueError):
            raise ValueError(f"Unsupported digest size: {digest_size}") from None
        selected = SelectedAlgorithm(Algorithm.from_name(algorithm_name.strip()), size)
        manager.generate_asymmetric_cert(selected)
        return {
            "publicKey": manager.get_public_key_pem(),
            "signatureAlgorithm": selected.signature_name,
            "jwtAlgorithm": selected.jwt_name,
            "extraInformation": selected.extra_information(),
            "hardwareBacked": manager.is_hardware_backed(),
            "challenge": b64encode(selected.attestation_challenge),
        }

    result, status = _run(generate, "generate key")
    return jsonify(result), status


@app.route("/api/sign", methods=["POST"])
def api_sign():
    payload = _json_payload()
    if payload is None:
        return jsonify({"error": "Expected JSON payload."}), 400

    text = payload.get("text")
    if not isinstance(text, str):
        return jsonify({"error": "Text to sign must be a string."}), 400

    def sign(manager: KeyManager) -> Dict[str, Any]:
        data = text.encode("utf-8")
        signature = manager.sign(data)
        return {
            "signature": _signature_text(signature),
            "jwt": manager.create_token(text),
            "verified": manager.verify(signature, data),
        }

    result, status = _run(sign, "sign text")
    return jsonify(result), status


@app.route("/api/verify", methods=["POST"])
def api_verify():
    payload = _json_payload()
    if payload is None:
        return jsonify({"error": "Expected JSON payload."}), 400

    token = payload.get("token")
    text = payload.get("text")
    signature_text = payload.get("signature")

    if isinstance(token, str) and token.strip():

        def verify(manager: KeyManager) -> Dict[str, Any]:
            return {"verified": verify_token(token.strip(), manager.get_public_key())}

    elif isinstance(text, str) and isinstance(signature_text, str):

        def verify(manager: KeyManager) -> Dict[str, Any]:
            signature = b64decode(signature_text.strip().rstrip("="), padding=False)
            return {"verified": manager.verify(signature, text.encode("utf-8"))}

    else:
        return jsonify({"error": "Provide either a token or text and signature."}), 400

    result, status = _run(verify, "verify signature")
    return jsonify(result), status


@app.route("/api/attestation", methods=["GET"])
def api_attestation():
    def attestation(manager: KeyManager) -> Dict[str, Any]:
        chain = manager.get_attestation_chain()
        challenge = manager.selected_algorithm.attestation_challenge
        details: Dict[str, Any] = {
            "challenge": b64encode(challenge),
            "chainPem": certificate_chain_pem(chain),
            "details": None,
            "challengeVerified": False,
            "appSigningCertificates": [],
            "rootOfTrust": [],
        }
        record = manager.get_attestation_record()
        if record is None:
            return details
        details.update(
            {
                "details": record_to_json(record),
                "challengeVerified": challenge_matches(record, challenge),
                "appSigningCertificates": app_signing_digests(record),
                "rootOfTrust": [
                    str(root)
                    for root in find_roots_of_trust(
                        record.software_enforced, record.hardware_enforced
                    )
                ],
            }
        )
        return details

    result, status = _run(attestation, "read attestation")
    return jsonify(result), status
