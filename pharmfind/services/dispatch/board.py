"""Driver dispatch board."""
import asyncio
import logging
from datetime import date
from typing import List, Optional, Tuple

from pharmfind.services.dispatch.models import DeliveryClaim, DriverStats, build_claim
from pharmfind.services.ordering.errors import (
    AlreadyAssignedError,
    ConcurrentUpdateError,
    DriverBusyError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from pharmfind.services.ordering.ledger import OrderLedger
from pharmfind.services.ordering.models import DeliveryLeg, Order, order_id_for
from pharmfind.services.ordering.stages import DeliveryStatus, OrderStatus
from pharmfind.services.ordering.transitions import (
    ACTIVE_DELIVERY_STATUSES,
    TERMINAL_DELIVERY_STATUSES,
    check_delivery_transition,
)
from pharmfind.services.sync.alerts import PHARMACISTS, AlertCenter
from pharmfind.services.sync.events import PoolEventBus

logger = logging.getLogger(__name__)


class DispatchBoard:
    """Pool of deliveries waiting for a driver, and the delivery sub-state-machine.

    Pool membership is the delivery leg's own status, stored on the order, so
    claiming a delivery and taking it out of the pool is one conditional
    write. Claims are also serialised through claim_lock so that a driver
    cannot win two deliveries at once within this process.
    """

    def __init__(
        self,
        ledger: OrderLedger,
        events: Optional[PoolEventBus] = None,
        alerts: Optional[AlertCenter] = None,
        claim_lock: Optional[asyncio.Lock] = None,
    ):
        self.ledger = ledger
        self.events = events
        self.alerts = alerts
        self.claim_lock = claim_lock or asyncio.Lock()

    async def _load(self, delivery_id: str) -> Tuple[Order, DeliveryLeg]:
        """Load the order behind a delivery id together with its current leg."""
        order_id = order_id_for(delivery_id)
        if order_id is None:
            raise NotFoundError(f"Delivery {delivery_id} not found")
        order = await self.ledger.repository.get(order_id)
        if order is None or order.delivery is None or order.delivery.delivery_id != delivery_id:
            raise NotFoundError(f"Delivery {delivery_id} not found")
        return order, order.delivery

    async def get_claim(self, delivery_id: str) -> DeliveryClaim:
        """Get a delivery by id."""
        order, _ = await self._load(delivery_id)
        return build_claim(order)

    async def get_active_claim(self, driver_id: str) -> Optional[DeliveryClaim]:
        """The driver's non-terminal delivery, if any."""
        orders = await self.ledger.list_where(
            lambda o: o.delivery is not None
            and o.delivery.driver_id == driver_id
            and o.delivery.status in ACTIVE_DELIVERY_STATUSES
        )
        if not orders:
            return None
        if len(orders) > 1:
            logger.error(
                f"[DISPATCH] Driver {driver_id} holds {len(orders)} active deliveries: "
                f"{[o.order_id for o in orders]}"
            )
        return build_claim(orders[0])

    async def list_available(self, driver_id: Optional[str] = None) -> List[DeliveryClaim]:
        """
        Deliveries waiting for a driver, oldest first.

        A driver who already holds an active delivery sees an empty pool.
        """
        if driver_id is not None and await self.get_active_claim(driver_id) is not None:
            logger.debug(f"[DISPATCH] Driver {driver_id} is busy, hiding pool")
            return []
        orders = await self.ledger.list_where(
            lambda o: o.delivery is not None and o.delivery.status == DeliveryStatus.AVAILABLE
        )
        claims = [build_claim(order) for order in orders]
        return sorted(claims, key=lambda claim: claim.opened_at)

    async def claim(self, driver_id: str, delivery_id: str) -> DeliveryClaim:
        """
        Give a driver exclusive hold of an available delivery.

        Raises:
            NotFoundError: if the delivery does not exist
            AlreadyAssignedError: if the delivery is not available, including
                when another claim wins the race for it
            DriverBusyError: if the driver already holds an active delivery
        """
        async with self.claim_lock:
            order, leg = await self._load(delivery_id)
            if leg.status != DeliveryStatus.AVAILABLE:
                raise AlreadyAssignedError(
                    f"Delivery {delivery_id} is already {leg.status.value}"
                )
            active = await self.get_active_claim(driver_id)
            if active is not None:
                raise DriverBusyError(
                    f"Driver {driver_id} already has active delivery {active.delivery_id}"
                )

            expected_version = order.version
            leg.status = DeliveryStatus.ASSIGNED
            leg.driver_id = driver_id
            leg.assigned_at = self.ledger.now()
            order.assigned_driver_id = driver_id
            self.ledger.apply_note(order, f"Delivery {delivery_id} assigned to driver {driver_id}")
            try:
                await self.ledger.save(order, expected_version)
            except ConcurrentUpdateError as e:
                logger.info(f"[DISPATCH] Driver {driver_id} lost the race for {delivery_id}")
                raise AlreadyAssignedError(
                    f"Delivery {delivery_id} was claimed by another driver"
                ) from e

        logger.info(f"[DISPATCH] {delivery_id} claimed by driver {driver_id}")
        if self.events is not None:
            self.events.emit("removed", delivery_id, order.order_id)
        return build_claim(order)

    async def advance(
        self, driver_id: str, delivery_id: str, to_status: DeliveryStatus
    ) -> DeliveryClaim:
        """
        Move a claimed delivery one step forward.

        picked_up puts the order out for delivery, in_transit is noted in the
        order history and delivered completes the order and frees the driver.

        Raises:
            InvalidTransitionError: on any skip, backward move, or if the
                driver does not hold this delivery
        """
        to_status = DeliveryStatus(to_status)
        if to_status == DeliveryStatus.FAILED:
            raise InvalidTransitionError("Use fail() to report a failed delivery")

        order, leg = await self._load(delivery_id)
        if leg.driver_id != driver_id:
            raise InvalidTransitionError(
                f"Delivery {delivery_id} is not assigned to driver {driver_id}"
            )
        check_delivery_transition(leg.status, to_status)

        expected_version = order.version
        now = self.ledger.now()
        if to_status == DeliveryStatus.PICKED_UP:
            if order.status == OrderStatus.READY:
                self.ledger.apply_status(
                    order, OrderStatus.OUT_FOR_DELIVERY, f"Picked up by driver {driver_id}"
                )
            elif order.status == OrderStatus.OUT_FOR_DELIVERY:
                # Re-dispatched attempt: the order already left the pharmacy once
                self.ledger.apply_note(order, f"Picked up again by driver {driver_id}")
            else:
                raise InvalidTransitionError(
                    f"Order {order.order_id} is '{order.status.value}', not ready for pickup"
                )
            leg.picked_up_at = now
        elif to_status == DeliveryStatus.IN_TRANSIT:
            self.ledger.apply_note(order, f"In transit with driver {driver_id}")
            leg.in_transit_at = now
        elif to_status == DeliveryStatus.DELIVERED:
            self.ledger.apply_status(order, OrderStatus.DELIVERED, f"Delivered by driver {driver_id}")
            leg.delivered_at = now
        leg.status = to_status

        await self.ledger.save(order, expected_version)
        logger.info(f"[DISPATCH] {delivery_id} -> {to_status.value} (driver {driver_id})")
        return build_claim(order)

    async def fail(self, driver_id: str, delivery_id: str, reason: str) -> DeliveryClaim:
        """
        Report that a claimed delivery could not be completed.

        The order keeps its status; the failure is noted in its history and
        the order waits in the pharmacist's failed-deliveries list for
        re-dispatch.
        """
        if not reason or not reason.strip():
            raise ValidationError("A failure reason is required")

        order, leg = await self._load(delivery_id)
        if leg.driver_id != driver_id:
            raise InvalidTransitionError(
                f"Delivery {delivery_id} is not assigned to driver {driver_id}"
            )
        check_delivery_transition(leg.status, DeliveryStatus.FAILED)

        expected_version = order.version
        leg.status = DeliveryStatus.FAILED
        leg.failed_at = self.ledger.now()
        leg.failure_reason = reason.strip()
        self.ledger.apply_note(order, f"Delivery failed: {leg.failure_reason}")
        await self.ledger.save(order, expected_version)

        logger.warning(f"[DISPATCH] {delivery_id} failed (driver {driver_id}): {leg.failure_reason}")
        if self.alerts is not None:
            self.alerts.emit(
                PHARMACISTS,
                "delivery_failed",
                f"Delivery {delivery_id} for order {order.order_id} failed: {leg.failure_reason}",
            )
        return build_claim(order)

    async def history(self, driver_id: str) -> List[DeliveryClaim]:
        """Finished deliveries of a driver, including failed earlier attempts, newest first."""
        orders = await self.ledger.list_where(
            lambda o: any(leg.driver_id == driver_id for leg in _legs(o))
        )
        claims = [
            build_claim(order, leg)
            for order in orders
            for leg in _legs(order)
            if leg.driver_id == driver_id and leg.status in TERMINAL_DELIVERY_STATUSES
        ]
        return sorted(claims, key=lambda c: c.delivered_at or c.failed_at, reverse=True)

    async def stats(self, driver_id: str, today: Optional[date] = None) -> DriverStats:
        """Dashboard figures for a driver."""
        today = today or self.ledger.now().date()
        finished = await self.history(driver_id)
        delivered = [c for c in finished if c.status == DeliveryStatus.DELIVERED]
        delivered_today = [c for c in delivered if c.delivered_at.date() == today]
        active = await self.get_active_claim(driver_id)
        available = await self.list_available()

        success_rate = round(len(delivered) / len(finished) * 100, 1) if finished else 0.0
        return DriverStats(
            driver_id=driver_id,
            today_deliveries=len(delivered_today),
            today_earnings=round(sum(c.delivery_fee for c in delivered_today), 2),
            available_orders=len(available),
            active_delivery_id=active.delivery_id if active else None,
            total_deliveries=len(finished),
            success_rate=success_rate,
        )


def _legs(order: Order) -> List[DeliveryLeg]:
    legs = list(order.delivery_attempts)
    if order.delivery is not None:
        legs.append(order.delivery)
    return legs
