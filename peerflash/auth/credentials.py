"""
Verifiable credentials for the login challenge.

The client wraps the server's nonce in a W3C-style verifiable credential
and signs it with the identity key. The signature covers the credential
minus its ``proof`` block, serialized by ``canonical_bytes``. Signer and
verifier both go through that one method, so the byte layout is defined in
exactly one place.
"""

import base64
import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from .identity import KeyPair
from .errors import ValidationError

CREDENTIALS_CONTEXT = "https://www.w3.org/2018/credentials/v1"
CREDENTIAL_TYPE = "VerifiableCredential"
PROOF_TYPE = "Ed25519Signature2018"
PROOF_PURPOSE = "authentication"
KEY_FRAGMENT = "keys-1"


def isoformat(timestamp: float) -> str:
    """Render a Unix timestamp as ISO-8601 UTC with milliseconds and ``Z``."""
    dt = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class CredentialSubject:
    """The claim being asserted: this DID answers this nonce."""
    id: str
    nonce: str

    def to_dict(self) -> dict:
        return {"id": self.id, "nonce": self.nonce}


@dataclass(frozen=True)
class Proof:
    """Detached Ed25519 proof over the canonical credential bytes."""
    type: str
    created: str
    verification_method: str
    proof_purpose: str
    signature: str  # base64

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "created": self.created,
            "verificationMethod": self.verification_method,
            "proofPurpose": self.proof_purpose,
            "signature": self.signature,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Proof":
        return cls(
            type=data["type"],
            created=data["created"],
            verification_method=data["verificationMethod"],
            proof_purpose=data["proofPurpose"],
            signature=data["signature"],
        )


@dataclass(frozen=True)
class VerifiableCredential:
    """
    A login credential, signed or unsigned.

    Field order here is the canonical signing order. Adding, removing or
    reordering signed fields invalidates every signature in existence.
    """
    context: Tuple[str, ...]
    type: Tuple[str, ...]
    issuer: str
    issuance_date: str
    credential_subject: CredentialSubject
    proof: Optional[Proof] = field(default=None, compare=False)

    @property
    def is_signed(self) -> bool:
        return self.proof is not None

    def claims(self) -> dict:
        """The signed subset, in canonical key order."""
        return {
            "@context": list(self.context),
            "type": list(self.type),
            "issuer": self.issuer,
            "issuanceDate": self.issuance_date,
            "credentialSubject": self.credential_subject.to_dict(),
        }

    def canonical_bytes(self) -> bytes:
        """Exact bytes covered by the proof signature."""
        return json.dumps(
            self.claims(), separators=(',', ':'), ensure_ascii=False
        ).encode("utf-8")

    def to_dict(self) -> dict:
        """Wire form, including the proof when present."""
        data = self.claims()
        if self.proof is not None:
            data["proof"] = self.proof.to_dict()
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(',', ':'), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: dict) -> "VerifiableCredential":
        """
        Parse the wire form.

        Raises:
            ValidationError: if a required key is missing or mistyped.
        """
        try:
            subject = data["credentialSubject"]
            proof_data = data.get("proof")
            return cls(
                context=tuple(_str_list(data["@context"], "@context")),
                type=tuple(_str_list(data["type"], "type")),
                issuer=_str(data["issuer"], "issuer"),
                issuance_date=_str(data["issuanceDate"], "issuanceDate"),
                credential_subject=CredentialSubject(
                    id=_str(subject["id"], "credentialSubject.id"),
                    nonce=_str(subject["nonce"], "credentialSubject.nonce"),
                ),
                proof=Proof.from_dict(proof_data) if proof_data is not None else None,
            )
        except (KeyError, TypeError) as e:
            raise ValidationError(f"Malformed credential: missing or invalid {e}")

    @classmethod
    def from_json(cls, text: str) -> "VerifiableCredential":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Credential is not valid JSON: {e}")
        if not isinstance(data, dict):
            raise ValidationError("Credential must be a JSON object")
        return cls.from_dict(data)

    def signature_bytes(self) -> bytes:
        """
        Decode the proof signature.

        Raises:
            ValueError: if unsigned or the signature is not valid base64.
        """
        if self.proof is None:
            raise ValueError("Credential has no proof")
        return base64.b64decode(self.proof.signature, validate=True)


def _str(value, name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(name)
    return value


def _str_list(value, name: str) -> list:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise TypeError(name)
    return value


def build_credential(
    did: str,
    nonce: str,
    issued_at: Optional[float] = None,
    clock: Optional[Callable[[], float]] = None,
) -> VerifiableCredential:
    """Build the unsigned login credential answering ``nonce``."""
    if issued_at is None:
        issued_at = (clock or _now)()
    return VerifiableCredential(
        context=(CREDENTIALS_CONTEXT,),
        type=(CREDENTIAL_TYPE,),
        issuer=did,
        issuance_date=isoformat(issued_at),
        credential_subject=CredentialSubject(id=did, nonce=nonce),
    )


def sign_credential(
    credential: VerifiableCredential,
    keypair: KeyPair,
    created: Optional[float] = None,
) -> VerifiableCredential:
    """Sign the canonical bytes and return a copy carrying the proof."""
    signature = keypair.sign_b64(credential.canonical_bytes())
    proof = Proof(
        type=PROOF_TYPE,
        created=isoformat(created if created is not None else _now()),
        verification_method=f"{credential.issuer}#{KEY_FRAGMENT}",
        proof_purpose=PROOF_PURPOSE,
        signature=signature,
    )
    return replace(credential, proof=proof)


def _now() -> float:
    return datetime.now(tz=timezone.utc).timestamp()
