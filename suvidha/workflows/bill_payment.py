"""
bill_payment.py - Bill payment workflow

Steps: input -> bill -> pay -> success. One instance covers one payment
attempt; it is discarded when the citizen leaves the bill screen. The
success step is entered only once the queue record has been written, so
an abandoned attempt never leaves anything behind and a failed write
leaves the citizen on the payment step to retry.
"""

import logging
from enum import Enum
from typing import Callable, Dict, List, Optional

from ..services.ids import IdGenerator
from ..services.local_db import LocalDatabase, QueueRecord, utc_now_iso
from ..services.offline_mode import ConnectivityMonitor
from ..services.scheduler import Scheduler, TimerHandle
from ..session.states import SERVICE_TYPES
from .catalog import QR_SAMPLE_IDS, Bill, DemoBillLookup
from .voice import extract_consumer_id, normalize_transcript_id

logger = logging.getLogger("BillPayment")


class BillStep(str, Enum):
    INPUT = "input"
    BILL = "bill"
    PAY = "pay"
    SUCCESS = "success"


class PaymentMethod(str, Enum):
    UPI = "upi"
    CASH = "cash"
    CARD = "card"


PAYMENT_DELAYS = {
    PaymentMethod.UPI: 2.0,
    PaymentMethod.CASH: 3.0,
    PaymentMethod.CARD: 2.0,
}
CASH_TICK_SEC = 0.9
CASH_NOTES = 3

SAVE_FAILED_MESSAGE = "Could not save the payment, please retry"

NUMPAD_CLEAR = "C"
NUMPAD_BACKSPACE = "⌫"


class BillPaymentWorkflow:
    """Guided payment of one utility bill."""

    kind = "payment"

    def __init__(
        self,
        service_type: str,
        scheduler: Scheduler,
        store: LocalDatabase,
        monitor: ConnectivityMonitor,
        ids: Optional[IdGenerator] = None,
        lookup: Optional[DemoBillLookup] = None,
        on_complete: Optional[Callable] = None,
    ):
        if service_type not in SERVICE_TYPES:
            raise ValueError(f"Unknown service type: {service_type}")

        self.service_type = service_type
        self.scheduler = scheduler
        self.store = store
        self.monitor = monitor
        self.ids = ids or IdGenerator()
        self.lookup = lookup or DemoBillLookup()
        self._on_complete = on_complete
        self._handles: List[TimerHandle] = []

        self.step = BillStep.INPUT
        self.consumer_id = ""
        self.bill: Optional[Bill] = None
        self.method: Optional[PaymentMethod] = None
        self.txn_id = ""
        self.processing = False
        self.cash_count = 0
        self.error = ""
        self.record: Optional[QueueRecord] = None

    # ==================== Consumer ID ====================

    def press_key(self, key: str) -> bool:
        if self.step != BillStep.INPUT:
            return False
        if key == NUMPAD_BACKSPACE:
            self.consumer_id = self.consumer_id[:-1]
        elif key == NUMPAD_CLEAR:
            self.consumer_id = ""
        elif len(key) == 1 and (key.isalnum() or key == "-"):
            self.consumer_id += key.upper()
        else:
            return False
        self.error = ""
        return True

    def set_consumer_id(self, text: str) -> bool:
        if self.step != BillStep.INPUT:
            return False
        self.consumer_id = (text or "").strip().upper()
        self.error = ""
        return True

    def apply_voice(self, transcript: str) -> bool:
        """Spoken consumer id; unrecognised speech is kept as a cleaned id."""
        if self.step != BillStep.INPUT:
            return False
        self.consumer_id = extract_consumer_id(transcript) or normalize_transcript_id(transcript)
        self.error = ""
        logger.info(f"Consumer ID from voice: {self.consumer_id}")
        return True

    def scan_qr(self) -> bool:
        """Simulated QR scan, yields the sample id for this service."""
        return self.set_consumer_id(QR_SAMPLE_IDS[self.service_type])

    # ==================== Steps ====================

    def fetch_bill(self) -> bool:
        if self.step != BillStep.INPUT:
            return False
        if not self.consumer_id.strip():
            self.error = "Please enter a consumer ID"
            return False

        self.bill = self.lookup.lookup(self.service_type, self.consumer_id)
        self.error = ""
        self.step = BillStep.BILL
        logger.info(f"Bill found for {self.consumer_id}: Rs {self.bill.amount}")
        return True

    def confirm(self) -> bool:
        if self.step != BillStep.BILL:
            return False
        self.step = BillStep.PAY
        return True

    def pay(self, method) -> bool:
        """
        Start payment with the chosen method.

        Returns:
            False when the payment is rejected (wrong step, already
            processing, or unknown method)
        """
        if self.step != BillStep.PAY or self.processing:
            logger.warning(f"Payment rejected at step {self.step.value} (processing={self.processing})")
            return False
        try:
            method = PaymentMethod(method)
        except ValueError:
            self.error = f"Unsupported payment method: {method}"
            return False

        self.method = method
        self.processing = True
        self.error = ""
        self.txn_id = self.ids.transaction_id()
        logger.info(f"Processing {method.value} payment {self.txn_id}")

        if method == PaymentMethod.CASH:
            self.cash_count = 0
            self._after(CASH_TICK_SEC, self._cash_tick)
        self._after(PAYMENT_DELAYS[method], self._complete)
        return True

    def _cash_tick(self):
        if not self.processing or self.cash_count >= CASH_NOTES:
            return
        self.cash_count += 1
        if self.cash_count < CASH_NOTES:
            self._after(CASH_TICK_SEC, self._cash_tick)

    def _complete(self):
        self.processing = False
        record = self.store.enqueue(
            self.kind,
            {
                "txn_id": self.txn_id,
                "consumer_id": self.consumer_id,
                "amount": self.bill.amount,
                "service": self.service_type,
                "method": self.method.value,
                "timestamp": utc_now_iso(),
            },
            online=self.monitor.is_online(),
        )
        if record is None:
            self.error = SAVE_FAILED_MESSAGE
            logger.error(f"Payment {self.txn_id} could not be saved, staying on payment step")
            return

        self.record = record
        self.step = BillStep.SUCCESS
        logger.info(f"Payment successful: {self.txn_id}")
        if self._on_complete:
            self._on_complete(self)

    def back(self, to_input: bool = False) -> bool:
        """
        Step back within the flow.

        Returns False when there is nowhere to go inside the flow (input
        step, payment in progress, or success).
        """
        if self.processing or self.step in (BillStep.INPUT, BillStep.SUCCESS):
            return False
        if to_input or self.step == BillStep.BILL:
            self.step = BillStep.INPUT
            self.bill = None
        else:
            self.step = BillStep.BILL
        self.error = ""
        return True

    # ==================== Lifecycle ====================

    def _after(self, delay: float, callback: Callable):
        self._handles = [h for h in self._handles if h.active]
        self._handles.append(self.scheduler.after(delay, callback))

    def cancel(self):
        for handle in self._handles:
            handle.cancel()
        self._handles = []
        if self.processing:
            logger.info(f"Payment {self.txn_id} abandoned before completion")
        self.processing = False

    def receipt(self) -> Optional[Dict]:
        """Completed payment for the receipt renderer."""
        if self.step != BillStep.SUCCESS or self.bill is None:
            return None
        receipt = dict(self.record.payload) if self.record else {}
        receipt.update({
            "txn_id": self.txn_id,
            "consumer_id": self.consumer_id,
            "name": self.bill.masked_name,
            "amount": self.bill.amount,
            "service": self.service_type,
            "method": self.method.value,
            "offline": not (self.record and self.record.created_online),
        })
        if self.record:
            receipt["local_id"] = self.record.local_id
        return receipt

    def to_dict(self) -> Dict:
        return {
            "workflow": "bill",
            "service_type": self.service_type,
            "step": self.step.value,
            "consumer_id": self.consumer_id,
            "bill": self.bill.to_dict() if self.bill else None,
            "method": self.method.value if self.method else None,
            "txn_id": self.txn_id,
            "processing": self.processing,
            "cash_count": self.cash_count,
            "error": self.error,
            "receipt": self.receipt(),
        }
