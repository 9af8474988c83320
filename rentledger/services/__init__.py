from flask import current_app

from .bill_generation import BillGenerationService, GenerationStatistics
from .bills import BillService
from .clock import FixedClock, SystemClock
from .payments import PaymentResult, PaymentService
from .run_coordinator import DatabaseRunFlag, GenerationReport, MemoryRunFlag, RunCoordinator
from .scheduler import BillScheduler


class Billing:
    """Process-wide billing state attached to the Flask app."""

    def __init__(self, app, clock=None):
        self.clock = clock or SystemClock()
        backend = app.config.get("BILL_RUN_FLAG_BACKEND", "memory")
        if backend == "database":
            flag = DatabaseRunFlag(clock=self.clock)
        elif backend == "memory":
            flag = MemoryRunFlag()
        else:
            raise ValueError(f"Unknown BILL_RUN_FLAG_BACKEND: {backend!r}")
        self.coordinator = RunCoordinator(flag=flag, clock=self.clock)
        self.scheduler = BillScheduler(
            self.coordinator,
            self.clock,
            run_hour=app.config.get("BILL_SCHEDULER_RUN_HOUR", 9),
            interval=app.config.get("BILL_SCHEDULER_INTERVAL_SECONDS", 3600),
            engine_factory=self.generation_service,
        )

    def generation_service(self):
        return BillGenerationService.from_app(clock=self.clock)

    def payment_service(self):
        return PaymentService(clock=self.clock)

    def bill_service(self):
        return BillService(clock=self.clock)


def init_billing(app, clock=None):
    billing = Billing(app, clock=clock)
    app.extensions["billing"] = billing
    return billing


def get_billing():
    return current_app.extensions["billing"]
