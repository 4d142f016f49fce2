"""
ledger_modules.assets.service
=============================

Responsibility:
    Journals monthly depreciation (Dr depreciation expense, Cr accumulated
    depreciation) and asset disposals, recognizing the gain or loss
    against book value.

Architecture:
    Module layer (ledger_modules).  Posting through DocumentPoster with
    ``auto_commit=False``; this service owns commit/rollback.

Invariants enforced:
    - A disposal entry removes the asset at cost and its accumulated
      depreciation in full; the difference to proceeds lands in the gain
      or loss account.

Failure modes:
    - Kernel errors (closed period, inactive account, double posting)
      -> session rolled back, exception re-raised.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from ledger_config.schema import ClosingSettings
from ledger_kernel.domain.actor import Actor
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.logging_config import get_logger
from ledger_kernel.services.notifications import NotificationHook
from ledger_modules._posting_helpers import AdapterResult, DocumentPoster, unit_of_work
from ledger_modules.assets.config import AssetsConfig
from ledger_modules.assets.models import AssetDepreciation, AssetDisposal

logger = get_logger("modules.assets.service")


class FixedAssetService:
    """Journals depreciation charges and disposals."""

    def __init__(
        self,
        session: Session,
        config: AssetsConfig,
        settings: ClosingSettings | None = None,
        clock: Clock | None = None,
        notifier: NotificationHook | None = None,
    ):
        self._session = session
        self._config = config
        self._poster = DocumentPoster(session, settings, clock, notifier)

    def record_depreciation(self, run: AssetDepreciation, actor: Actor) -> AdapterResult:
        description = f"Penyusutan {run.asset_code} periode {run.period_label}"
        with unit_of_work(self._session):
            return self._poster.post(
                run.record,
                run.depreciation_date,
                description,
                [
                    LineSpec.dr(run.expense_account_code, run.amount, description),
                    LineSpec.cr(run.accumulated_account_code, run.amount, description),
                ],
                actor,
                reference_type=self._config.depreciation_reference_type,
                reference_number=run.depreciation_number,
            )

    def record_disposal(self, disposal: AssetDisposal, actor: Actor) -> AdapterResult:
        logger.info("asset_disposal_started", extra={
            "asset_code": disposal.asset_code,
            "book_value": str(disposal.book_value),
            "disposal_price": str(disposal.disposal_price),
            "gain_loss": str(disposal.gain_loss),
        })
        lines = self.disposal_lines(disposal)
        with unit_of_work(self._session):
            return self._poster.post(
                disposal.record,
                disposal.disposal_date,
                f"Disposal aset {disposal.asset_code} - {disposal.asset_name}",
                lines,
                actor,
                reference_type=self._config.disposal_reference_type,
                reference_number=disposal.disposal_number,
            )

    def disposal_lines(self, disposal: AssetDisposal) -> list[LineSpec]:
        lines: list[LineSpec] = []
        if disposal.accumulated_depreciation > 0:
            lines.append(LineSpec.dr(
                disposal.accumulated_account_code,
                disposal.accumulated_depreciation,
                "Akumulasi penyusutan",
            ))
        if disposal.disposal_price > 0:
            lines.append(LineSpec.dr(
                disposal.proceeds_account_code,
                disposal.disposal_price,
                "Hasil penjualan aset",
            ))

        gain_loss = disposal.gain_loss
        if gain_loss < 0:
            lines.append(LineSpec.dr(self._config.disposal_loss_account_code, -gain_loss, "Rugi disposal aset"))

        lines.append(LineSpec.cr(disposal.asset_account_code, disposal.acquisition_cost, disposal.asset_name))
        if gain_loss > 0:
            lines.append(LineSpec.cr(self._config.disposal_gain_account_code, gain_loss, "Laba disposal aset"))
        return lines
