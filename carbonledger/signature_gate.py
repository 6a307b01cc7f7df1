# -*- coding: utf-8 -*-
"""
SignatureGateEngine - Engine 7: CarbonLedger

Controls who may sign a report, binds each signature to the payload it
was given, and detects any later edit.

Signing:
    - The signer's role must be one of the standard's authorized roles.
      Standards that require signatures limit this to owner, director
      and auditor.
    - The same signer cannot hold two valid signatures on one report.
    - ``content_hash`` is the SHA-256 of the canonical JSON payload.
    - ``signature_hash`` is the SHA-256 of the signing envelope (report
      id, signer, content hash, signature type, timestamp, nonce).
    - Report status moves draft -> pending_review -> completed as valid
      signatures reach the standard's required count, and back down when
      signatures are revoked.

Signing an incomplete report is permitted.

Verification recomputes the payload hash and compares it with every
valid signature. A mismatch always raises ``IntegrityError``.
"""

from __future__ import annotations

import logging
import secrets
import time
from datetime import datetime, timezone
from typing import List, Optional

from carbonledger.config import CarbonLedgerConfig, get_config
from carbonledger.exceptions import (
    IntegrityError,
    SignatureAuthorizationError,
    ValidationError,
)
from carbonledger.metrics import (
    observe_duration,
    record_integrity_failure,
    record_signature,
)
from carbonledger.models import (
    Report,
    ReportStatus,
    Signature,
    SignatureStatus,
    SignerIdentity,
    SignerRole,
)
from carbonledger.provenance import get_provenance_tracker, hash_payload
from carbonledger.standards import StandardRequirementMapper
from carbonledger.stores import ReportStore

logger = logging.getLogger(__name__)


class SignatureGateEngine:
    """Signs, revokes and verifies report signatures."""

    def __init__(
        self,
        report_store: ReportStore,
        mapper: StandardRequirementMapper,
        config: Optional[CarbonLedgerConfig] = None,
    ) -> None:
        self._store = report_store
        self._mapper = mapper
        self._config = config or get_config()
        self._provenance = (
            get_provenance_tracker() if self._config.enable_provenance else None
        )
        logger.info("SignatureGateEngine initialized")

    # ==================================================================
    # PUBLIC API
    # ==================================================================

    def sign(
        self,
        report_id: str,
        signer: SignerIdentity,
        signature_type: str = "approval",
    ) -> Signature:
        """Sign the current payload of a report.

        Args:
            report_id: Report to sign.
            signer: Signer identity and project role.
            signature_type: Kind of sign-off.

        Returns:
            The stored Signature.

        Raises:
            ValidationError: If the report is unknown or the signer
                already holds a valid signature on it.
            SignatureAuthorizationError: If the signer's role may not
                sign for the report's standard.
        """
        start = time.monotonic()
        report = self._get_report(report_id)
        definition = self._mapper.requirements(report.standard_id)
        role = SignerRole(signer.role)

        if role not in definition.authorized_roles:
            record_signature(definition.standard_id.value, "rejected")
            logger.warning(
                "Signing of report %s refused: role %s not authorized for %s",
                report_id, role.value, definition.standard_id.value,
            )
            raise SignatureAuthorizationError(
                definition.standard_id.value,
                role.value,
                [r.value for r in definition.authorized_roles],
            )

        existing = self._valid_signatures(report_id)
        if any(s.signer_id == signer.user_id for s in existing):
            raise ValidationError(
                f"User {signer.user_id} has already signed report {report_id}",
                invalid_fields={"signer_id": "duplicate signature"},
            )

        signed_at = datetime.now(timezone.utc).replace(microsecond=0)
        content_hash = hash_payload(report.payload)
        envelope = {
            "reportId": report_id,
            "userId": signer.user_id,
            "contentHash": content_hash,
            "signatureType": signature_type,
            "timestamp": signed_at.isoformat(),
            "nonce": secrets.token_hex(16),
        }
        signature = Signature(
            report_id=report_id,
            signer_id=signer.user_id,
            signer_name=signer.name,
            signer_role=role,
            signature_type=signature_type,
            content_hash=content_hash,
            signature_hash=hash_payload(envelope),
            envelope=envelope,
            signed_at=signed_at,
        )
        self._store.save_signature(signature)
        report = self._refresh_status(report, definition.required_signatures)

        record_signature(definition.standard_id.value, "sign")
        observe_duration("sign", time.monotonic() - start)
        if self._provenance is not None:
            self._provenance.record(
                "signature",
                "sign",
                signature.signature_id,
                data={
                    "report_id": report_id,
                    "signer_id": signer.user_id,
                    "content_hash": content_hash,
                    "signature_hash": signature.signature_hash,
                },
            )
        logger.info(
            "Report %s signed by %s (%s); status=%s",
            report_id, signer.user_id, role.value, report.status.value,
        )
        return signature

    def revoke(self, signature_id: str, reason: str) -> Signature:
        """Revoke a signature without deleting the report.

        Raises:
            ValidationError: If the signature is unknown or already
                revoked.
        """
        signature = self._store.get_signature(signature_id)
        if signature is None:
            raise ValidationError(
                f"Signature {signature_id} not found",
                invalid_fields={"signature_id": "unknown"},
            )
        if not signature.is_valid:
            raise ValidationError(
                f"Signature {signature_id} is already revoked",
                invalid_fields={"signature_id": "revoked"},
            )

        revoked = signature.model_copy(
            update={
                "status": SignatureStatus.REVOKED,
                "revoked_at": datetime.now(timezone.utc).replace(microsecond=0),
                "revocation_reason": reason,
            },
        )
        self._store.update_signature(revoked)

        report = self._get_report(signature.report_id)
        definition = self._mapper.requirements(report.standard_id)
        report = self._refresh_status(report, definition.required_signatures)

        record_signature(definition.standard_id.value, "revoke")
        if self._provenance is not None:
            self._provenance.record(
                "signature",
                "revoke",
                signature_id,
                data={"report_id": report.report_id, "reason": reason},
            )
        logger.warning(
            "Signature %s on report %s revoked (%s); status=%s",
            signature_id, report.report_id, reason, report.status.value,
        )
        return revoked

    def verify(self, report_id: str) -> bool:
        """Check every valid signature against the stored payload.

        Returns:
            True when all valid signatures match, False when the report
            has no valid signature.

        Raises:
            ValidationError: If the report is unknown.
            IntegrityError: If the payload or a signing envelope changed
                after signing.
        """
        start = time.monotonic()
        report = self._get_report(report_id)
        signatures = self._valid_signatures(report_id)
        if not signatures:
            logger.info("Report %s has no valid signature to verify", report_id)
            return False

        actual = hash_payload(report.payload)
        for signature in signatures:
            if signature.content_hash != actual:
                self._integrity_failure(report, signature, signature.content_hash, actual)
            envelope_hash = hash_payload(signature.envelope)
            if signature.signature_hash != envelope_hash:
                self._integrity_failure(
                    report, signature, signature.signature_hash, envelope_hash,
                )

        observe_duration("verify", time.monotonic() - start)
        if self._provenance is not None:
            self._provenance.record(
                "signature",
                "verify",
                report_id,
                data={"content_hash": actual, "signatures": len(signatures)},
            )
        logger.info(
            "Report %s verified against %d signature(s)", report_id, len(signatures),
        )
        return True

    def check_signature(self, signature_id: str) -> bool:
        """True when the signature is valid and still matches its report."""
        signature = self._store.get_signature(signature_id)
        if signature is None or not signature.is_valid:
            return False
        report = self._store.get_report(signature.report_id)
        if report is None:
            return False
        return (
            signature.content_hash == hash_payload(report.payload)
            and signature.signature_hash == hash_payload(signature.envelope)
        )

    def signatures(self, report_id: str) -> List[Signature]:
        """All signatures on a report, oldest first, revoked included."""
        return self._store.get_signatures(report_id)

    # ==================================================================
    # Helpers
    # ==================================================================

    def _get_report(self, report_id: str) -> Report:
        report = self._store.get_report(report_id)
        if report is None:
            raise ValidationError(
                f"Report {report_id} not found",
                invalid_fields={"report_id": "unknown"},
            )
        return report

    def _valid_signatures(self, report_id: str) -> List[Signature]:
        return [s for s in self._store.get_signatures(report_id) if s.is_valid]

    def _refresh_status(self, report: Report, required: int) -> Report:
        valid = len(self._valid_signatures(report.report_id))
        if valid >= required:
            status = ReportStatus.COMPLETED
        elif valid > 0:
            status = ReportStatus.PENDING_REVIEW
        else:
            status = ReportStatus.DRAFT
        if status == report.status:
            return report
        updated = report.model_copy(
            update={
                "status": status,
                "updated_at": datetime.now(timezone.utc).replace(microsecond=0),
            },
        )
        self._store.save_report(updated)
        logger.debug(
            "Report %s status %s -> %s (%d/%d signatures)",
            report.report_id, report.status.value, status.value, valid, required,
        )
        return updated

    def _integrity_failure(
        self,
        report: Report,
        signature: Signature,
        expected: str,
        actual: str,
    ) -> None:
        record_integrity_failure(report.standard_id.value)
        logger.error(
            "Integrity failure on report %s: signature %s expected %s, got %s",
            report.report_id, signature.signature_id, expected, actual,
        )
        raise IntegrityError(report.report_id, signature.signature_id, expected, actual)


__all__ = ["SignatureGateEngine"]
