"""
Booking service.

Orchestrates the booking lifecycle: every write that depends on the
reservation timeline of a space runs under that space's lock, inside one
transaction, and publishes its notifications only after commit.
"""
import logging
import re
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar
import pytz
from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from app.config import Settings, get_settings
from app.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    SpaceLockTimeoutError,
    ValidationError,
)
from app.core.space_lock import space_lock, space_locks
from app.core.time_range import TimeRange, as_utc_naive
from app.database import with_db_retry
from app.models.booking import (
    Booking,
    BookingExtension,
    BookingPenalty,
    BookingStatus,
    PaymentMethod,
    PaymentStatus,
    PenaltyType,
    VehicleType,
)
from app.models.location import (
    LocationAdmin,
    ParkingLocation,
    ParkingSpace,
    SpaceStatus,
    SpaceType,
)
from app.services import lifecycle
from app.services.availability import (
    AvailabilityProjector,
    LocationAvailability,
    OccupancyProjection,
)
from app.services.conflict_checker import ConflictChecker, TimeSlot
from app.services.notifications import (
    EventType,
    LoggingNotificationSink,
    NotificationEvent,
    NotificationSink,
    publish_all,
)
from app.services.pricing import PricingEngine
from app.services.space_ledger import (
    BulkStatusResult,
    SpaceAvailabilityLedger,
    SpaceStatusChange,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Events = List[NotificationEvent]

_HHMM = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")


@dataclass
class VehicleInfo:
    plate_number: str
    vehicle_type: str
    make: Optional[str] = None
    model: Optional[str] = None


@dataclass
class SpaceStatusUpdate:
    change: SpaceStatusChange
    projection: OccupancyProjection


@dataclass
class BulkSpaceStatusUpdate:
    result: BulkStatusResult
    projection: OccupancyProjection


@dataclass
class SpaceSpec:
    space_id: str
    type: str = SpaceType.REGULAR.value
    level: Optional[str] = None
    section: Optional[str] = None


@dataclass
class LocationSpec:
    name: str
    address: str
    hourly_rate: float
    spaces: List[SpaceSpec]
    opening_time: str = "00:00"
    closing_time: str = "23:59"
    is_24_hours: bool = False
    timezone: str = "UTC"
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    admin_ids: List[str] = field(default_factory=list)


def booking_payload(booking: Booking, **extra: Any) -> Dict[str, Any]:
    payload = {
        "booking_id": str(booking.id),
        "status": booking.status,
        "payment_status": booking.payment_status,
        "space_id": booking.space_id,
        "start_time": booking.start_time.isoformat(),
        "end_time": booking.end_time.isoformat(),
        "total_amount": booking.total_amount,
        "final_amount": booking.final_amount,
    }
    payload.update(extra)
    return payload


def _parse_enum(enum_cls, value: str, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValidationError(
            f"Invalid {label} '{value}'. Must be one of: {allowed}",
            details={label.replace(" ", "_"): value},
        )


class BookingService:
    """Entry point for every booking and space-status operation."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        sink: Optional[NotificationSink] = None,
        settings: Optional[Settings] = None,
    ):
        self.session_maker = session_maker
        self.sink = sink or LoggingNotificationSink()
        self.settings = settings or get_settings()
        self.pricing = PricingEngine(self.settings)

    # ============ Plumbing ============

    @staticmethod
    def _now(now: Optional[datetime]) -> datetime:
        return as_utc_naive(now) if now is not None else datetime.utcnow()

    @property
    def _active_grace(self) -> timedelta:
        return timedelta(hours=self.settings.active_expiry_grace_hours)

    async def _guarded_write(
        self,
        op_name: str,
        location_id: uuid.UUID,
        space_id: str,
        work: Callable[[AsyncSession], Awaitable[Tuple[T, Events]]],
        retry: bool = False,
    ) -> T:
        """
        Run ``work`` holding the space lock, in one transaction.

        Events returned by ``work`` are published once the transaction has
        committed. When ``retry`` is set, lock timeouts and transient
        database errors are retried a bounded number of times.
        """
        async def attempt() -> Tuple[T, Events]:
            async with space_lock(
                location_id, space_id, timeout=self.settings.space_lock_timeout_seconds
            ):
                async with self.session_maker.begin() as db:
                    return await work(db)

        result, events = await with_db_retry(
            op_name,
            attempt,
            max_attempts=self.settings.booking_write_max_attempts if retry else 1,
            retry_on=(OperationalError, SpaceLockTimeoutError),
        )
        await publish_all(self.sink, events)
        return result

    async def _load_booking(self, db: AsyncSession, booking_id: uuid.UUID) -> Booking:
        booking = await db.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError("Booking not found", details={"booking_id": str(booking_id)})
        return booking

    async def _booking_key(self, booking_id: uuid.UUID) -> Tuple[uuid.UUID, str]:
        async with self.session_maker() as db:
            result = await db.execute(
                select(Booking.location_id, Booking.space_id).where(Booking.id == booking_id)
            )
            row = result.first()
        if row is None:
            raise NotFoundError("Booking not found", details={"booking_id": str(booking_id)})
        return row.location_id, row.space_id

    async def _projection_events(
        self,
        db: AsyncSession,
        location: ParkingLocation,
        now: datetime,
        changes: Sequence[SpaceStatusChange],
        booking_id: Optional[uuid.UUID] = None,
        action: Optional[str] = None,
    ) -> Tuple[OccupancyProjection, Events]:
        await db.flush()
        projection = await AvailabilityProjector(db).project(location, now)
        events: Events = []
        for change in changes:
            payload = {
                "space_id": change.space_id,
                "old_status": change.old_status,
                "new_status": change.new_status,
            }
            if booking_id is not None:
                payload["booking_id"] = str(booking_id)
            if action:
                payload["action"] = action
            events.append(
                NotificationEvent(EventType.SPACE_UPDATED, payload, location_id=str(location.id))
            )
        events.append(
            NotificationEvent(
                EventType.AVAILABILITY_UPDATED,
                {
                    "available_spaces": projection.available_spaces,
                    "total_spaces": projection.total_spaces,
                    "occupancy_percentage": projection.occupancy_percentage,
                },
                location_id=str(location.id),
            )
        )
        return projection, events

    @staticmethod
    def _booking_event(booking: Booking, action: str, **extra: Any) -> NotificationEvent:
        return NotificationEvent(
            EventType.BOOKING_UPDATED,
            booking_payload(booking, action=action, **extra),
            location_id=str(booking.location_id),
            booking_id=str(booking.id),
            user_id=booking.user_id,
        )

    @staticmethod
    def _issue_qr_code(booking: Booking) -> None:
        if not booking.qr_code:
            booking.qr_code = secrets.token_urlsafe(24)

    # ============ Creation ============

    async def create_booking(
        self,
        user_id: str,
        location_id: uuid.UUID,
        space_id: str,
        vehicle: VehicleInfo,
        start_time: datetime,
        end_time: datetime,
        payment_method: str,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        now = self._now(now)
        if not user_id:
            raise ValidationError("User ID is required")
        if not space_id:
            raise ValidationError("Space ID is required")
        plate_number = (vehicle.plate_number or "").strip().upper()
        if not plate_number:
            raise ValidationError("Vehicle plate number is required")
        vehicle_type = _parse_enum(VehicleType, vehicle.vehicle_type, "vehicle type")
        method = _parse_enum(PaymentMethod, payment_method, "payment method")

        start_time = as_utc_naive(start_time)
        end_time = as_utc_naive(end_time)
        if start_time <= now:
            raise ValidationError("Start time must be in the future")
        if end_time <= start_time:
            raise ValidationError("End time must be after start time")
        window = TimeRange(start_time, end_time)

        async def work(db: AsyncSession) -> Tuple[Booking, Events]:
            ledger = SpaceAvailabilityLedger(db)
            space = await ledger.lock_space(location_id, space_id)
            location = await ledger.get_location(location_id)
            if not location.is_active:
                raise NotFoundError(
                    "Parking location not found or inactive",
                    details={"location_id": str(location_id)},
                )
            if not location.is_open_at(now):
                raise ValidationError("Parking location is currently closed")
            if space.status == SpaceStatus.MAINTENANCE:
                raise ValidationError(f"Parking space is {space.status}")
            checker = ConflictChecker(db)
            if space.status != SpaceStatus.AVAILABLE:
                # Set by an operator when no booking accounts for it
                if not await checker.find_holders(location_id, space_id):
                    raise ValidationError(
                        f"Parking space is {space.status}",
                        details={"space_id": space_id, "status": space.status},
                    )

            conflicts = await checker.find_conflicts(location_id, space_id, window)
            if conflicts:
                raise ConflictError("Time slot conflicts with existing booking", conflicts)

            immediate = method == PaymentMethod.CASH
            booking = Booking(
                user_id=user_id,
                location_id=location_id,
                space_id=space_id,
                plate_number=plate_number,
                vehicle_type=vehicle_type.value,
                vehicle_make=vehicle.make or None,
                vehicle_model=vehicle.model or None,
                start_time=start_time,
                end_time=end_time,
                total_amount=self.pricing.base_amount(window, location.hourly_rate, space.type),
                payment_method=method.value,
                status=(BookingStatus.CONFIRMED if immediate else BookingStatus.PENDING).value,
                payment_status=(PaymentStatus.COMPLETED if immediate else PaymentStatus.PENDING).value,
                notes=notes or None,
                extensions=[],
                penalties=[],
            )
            if immediate:
                self._issue_qr_code(booking)
            db.add(booking)
            await db.flush()

            events: Events = []
            if immediate:
                changes = []
                if space.status == SpaceStatus.AVAILABLE:
                    changes.append(
                        await ledger.set_status(location, space_id, SpaceStatus.RESERVED.value, now)
                    )
                _, events = await self._projection_events(
                    db, location, now, changes, booking_id=booking.id, action="created"
                )
            events.insert(0, self._booking_event(booking, "created"))
            logger.info(
                "Booking %s created for %s/%s %s - %s (%s)",
                booking.id,
                location_id,
                space_id,
                start_time.isoformat(),
                end_time.isoformat(),
                booking.status,
            )
            return booking, events

        return await self._guarded_write("create_booking", location_id, space_id, work, retry=True)

    async def confirm_payment(
        self,
        booking_id: uuid.UUID,
        succeeded: bool,
        transaction_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """Apply a payment gateway outcome to a pending booking."""
        now = self._now(now)
        location_id, space_id = await self._booking_key(booking_id)

        async def work(db: AsyncSession) -> Tuple[Booking, Events]:
            ledger = SpaceAvailabilityLedger(db)
            await ledger.lock_space(location_id, space_id)
            booking = await self._load_booking(db, booking_id)
            if booking.payment_status == PaymentStatus.COMPLETED:
                raise ValidationError("Booking is already paid")
            lifecycle.ensure_status(
                booking, (BookingStatus.PENDING,), "Only pending bookings accept payment"
            )
            if transaction_id:
                booking.payment_transaction_id = transaction_id

            if not succeeded:
                booking.payment_status = PaymentStatus.FAILED.value
                logger.info("Payment failed for booking %s", booking.id)
                return booking, [self._payment_event(booking)]

            if now >= booking.end_time:
                raise ValidationError("Booking window has already passed")
            conflicts = await ConflictChecker(db).find_conflicts(
                location_id, space_id, booking.time_range, exclude_booking_id=booking.id
            )
            if conflicts:
                raise ConflictError("Time slot was taken before payment completed", conflicts)

            booking.payment_status = PaymentStatus.COMPLETED.value
            lifecycle.transition(booking, BookingStatus.CONFIRMED)
            self._issue_qr_code(booking)

            location = await ledger.get_location(location_id)
            changes = []
            if ledger.require_space(location, space_id).status == SpaceStatus.AVAILABLE:
                changes.append(
                    await ledger.set_status(location, space_id, SpaceStatus.RESERVED.value, now)
                )
            _, events = await self._projection_events(
                db, location, now, changes, booking_id=booking.id, action="payment_completed"
            )
            return booking, [self._payment_event(booking), self._booking_event(booking, "confirmed")] + events

        return await self._guarded_write("confirm_payment", location_id, space_id, work, retry=True)

    @staticmethod
    def _payment_event(booking: Booking) -> NotificationEvent:
        return NotificationEvent(
            EventType.PAYMENT_UPDATED,
            {
                "booking_id": str(booking.id),
                "payment_status": booking.payment_status,
                "transaction_id": booking.payment_transaction_id,
                "amount": booking.total_amount,
            },
            location_id=str(booking.location_id),
            booking_id=str(booking.id),
            user_id=booking.user_id,
        )

    # ============ Check-in / check-out ============

    async def check_in(
        self,
        booking_id: uuid.UUID,
        presented_qr_code: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        now = self._now(now)
        location_id, space_id = await self._booking_key(booking_id)

        async def work(db: AsyncSession) -> Tuple[Booking, Events]:
            ledger = SpaceAvailabilityLedger(db)
            space = await ledger.lock_space(location_id, space_id)
            booking = await self._load_booking(db, booking_id)
            if presented_qr_code and presented_qr_code != booking.qr_code:
                raise ValidationError("Invalid QR code")
            lifecycle.ensure_status(
                booking, (BookingStatus.CONFIRMED,), "Only confirmed bookings can be checked in"
            )
            if now < booking.start_time:
                raise ValidationError("Cannot check in before booking start time")
            if now > booking.end_time:
                raise ValidationError("Booking has expired")
            if space.status == SpaceStatus.MAINTENANCE:
                raise ValidationError("Parking space is under maintenance")

            lifecycle.transition(booking, BookingStatus.ACTIVE)
            booking.actual_entry_time = now

            location = await ledger.get_location(location_id)
            change = await ledger.set_status(location, space_id, SpaceStatus.OCCUPIED.value, now)
            _, events = await self._projection_events(
                db, location, now, [change], booking_id=booking.id, action="checkin"
            )
            events.insert(
                0,
                self._booking_event(
                    booking, "checkin", actual_entry_time=now.isoformat()
                ),
            )
            return booking, events

        return await self._guarded_write("check_in", location_id, space_id, work)

    async def check_out(self, booking_id: uuid.UUID, now: Optional[datetime] = None) -> Booking:
        now = self._now(now)
        location_id, space_id = await self._booking_key(booking_id)

        async def work(db: AsyncSession) -> Tuple[Booking, Events]:
            ledger = SpaceAvailabilityLedger(db)
            await ledger.lock_space(location_id, space_id)
            booking = await self._load_booking(db, booking_id)
            lifecycle.ensure_status(
                booking, (BookingStatus.ACTIVE,), "Only active bookings can be checked out"
            )
            if booking.actual_entry_time is None:
                raise ValidationError("Booking was never checked in")

            location = await ledger.get_location(location_id)
            lifecycle.transition(booking, BookingStatus.COMPLETED)
            booking.actual_exit_time = now

            penalty = self.pricing.overstay_penalty(booking.end_time, now, location.hourly_rate)
            if penalty > 0:
                hours = self.pricing.overstay_hours(booking.end_time, now)
                booking.penalties.append(
                    BookingPenalty(
                        type=PenaltyType.OVERSTAY.value,
                        amount=penalty,
                        description=f"Overstay penalty: {hours} hours",
                        issued_at=now,
                        is_paid=False,
                    )
                )
                logger.info("Booking %s overstayed %d hour(s), penalty %.2f", booking.id, hours, penalty)

            change = await ledger.release_if_held(location, space_id, now, released_booking_id=booking.id)
            _, events = await self._projection_events(
                db,
                location,
                now,
                [change] if change else [],
                booking_id=booking.id,
                action="checkout",
            )
            events.insert(
                0,
                self._booking_event(
                    booking,
                    "checkout",
                    actual_exit_time=now.isoformat(),
                    total_penalties=booking.total_penalties,
                ),
            )
            return booking, events

        return await self._guarded_write("check_out", location_id, space_id, work)

    # ============ Cancellation / extension ============

    async def cancel_booking(
        self,
        booking_id: uuid.UUID,
        requester_id: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        now = self._now(now)
        location_id, space_id = await self._booking_key(booking_id)

        async def work(db: AsyncSession) -> Tuple[Booking, Events]:
            ledger = SpaceAvailabilityLedger(db)
            await ledger.lock_space(location_id, space_id)
            booking = await self._load_booking(db, booking_id)
            location = await ledger.get_location(location_id)
            if booking.user_id != requester_id and not location.is_admin(requester_id):
                raise PermissionDeniedError("You can only cancel your own bookings")
            if booking.status == BookingStatus.ACTIVE:
                message = "Cannot cancel active booking. Please check out first."
            else:
                message = f"Cannot cancel {booking.status} booking"
            lifecycle.ensure_status(
                booking, (BookingStatus.PENDING, BookingStatus.CONFIRMED), message
            )

            was_confirmed = booking.status == BookingStatus.CONFIRMED
            lifecycle.transition(booking, BookingStatus.CANCELLED)

            refund = self.pricing.cancellation_refund(
                booking.start_time, now, booking.total_amount, booking.payment_status
            )
            booking.cancelled_at = now
            booking.cancelled_by = requester_id
            booking.cancellation_reason = reason or "User requested cancellation"
            booking.refund_amount = refund.amount
            booking.refund_percentage = refund.percentage
            booking.refund_status = refund.status

            events: Events = []
            if was_confirmed:
                change = await ledger.release_if_held(
                    location,
                    space_id,
                    now,
                    released_booking_id=booking.id,
                    held=(SpaceStatus.RESERVED,),
                )
                if change:
                    _, events = await self._projection_events(
                        db, location, now, [change], booking_id=booking.id, action="cancelled"
                    )
            events.insert(
                0,
                self._booking_event(
                    booking,
                    "cancelled",
                    refund_amount=refund.amount,
                    refund_percentage=refund.percentage,
                    refund_status=refund.status,
                ),
            )
            return booking, events

        return await self._guarded_write("cancel_booking", location_id, space_id, work)

    async def extend_booking(
        self,
        booking_id: uuid.UUID,
        requester_id: str,
        new_end_time: datetime,
        now: Optional[datetime] = None,
    ) -> Booking:
        now = self._now(now)
        new_end_time = as_utc_naive(new_end_time)
        location_id, space_id = await self._booking_key(booking_id)

        async def work(db: AsyncSession) -> Tuple[Booking, Events]:
            ledger = SpaceAvailabilityLedger(db)
            space = await ledger.lock_space(location_id, space_id)
            booking = await self._load_booking(db, booking_id)
            if booking.user_id != requester_id:
                raise PermissionDeniedError("You can only extend your own bookings")
            lifecycle.ensure_status(
                booking,
                (BookingStatus.CONFIRMED, BookingStatus.ACTIVE),
                "Only confirmed or active bookings can be extended",
            )
            if new_end_time <= booking.end_time:
                raise ValidationError("New end time must be after current end time")

            delta = TimeRange(booking.end_time, new_end_time)
            conflicts = await ConflictChecker(db).find_conflicts(
                location_id, space_id, delta, exclude_booking_id=booking.id
            )
            if conflicts:
                raise ConflictError("Extension conflicts with another booking", conflicts)

            location = await ledger.get_location(location_id)
            additional = self.pricing.extension_amount(
                booking.end_time, new_end_time, location.hourly_rate, space.type
            )
            booking.extensions.append(
                BookingExtension(
                    original_end_time=booking.end_time,
                    new_end_time=new_end_time,
                    additional_amount=additional,
                    requested_at=now,
                    status="approved",
                )
            )
            old_end = booking.end_time
            booking.end_time = new_end_time
            booking.total_amount = round(booking.total_amount + additional, 2)
            logger.info(
                "Booking %s extended %s -> %s (+%.2f)",
                booking.id,
                old_end.isoformat(),
                new_end_time.isoformat(),
                additional,
            )
            return booking, [
                self._booking_event(
                    booking,
                    "extended",
                    additional_hours=delta.duration_hours,
                    additional_amount=additional,
                )
            ]

        return await self._guarded_write("extend_booking", location_id, space_id, work, retry=True)

    async def mark_no_show(
        self,
        booking_id: uuid.UUID,
        actor_id: str,
        now: Optional[datetime] = None,
    ) -> Booking:
        """Administratively close a confirmed booking whose holder never arrived."""
        now = self._now(now)
        location_id, space_id = await self._booking_key(booking_id)

        async def work(db: AsyncSession) -> Tuple[Booking, Events]:
            ledger = SpaceAvailabilityLedger(db)
            await ledger.lock_space(location_id, space_id)
            booking = await self._load_booking(db, booking_id)
            location = await ledger.get_location(location_id)
            if not location.is_admin(actor_id):
                raise PermissionDeniedError("Only location admins can mark no-shows")
            lifecycle.ensure_status(
                booking, (BookingStatus.CONFIRMED,), "Only confirmed bookings can be marked no-show"
            )
            if now < booking.start_time:
                raise ValidationError("Booking has not started yet")

            lifecycle.transition(booking, BookingStatus.NO_SHOW)
            change = await ledger.release_if_held(location, space_id, now, released_booking_id=booking.id)
            _, events = await self._projection_events(
                db, location, now, [change] if change else [], booking_id=booking.id, action="no_show"
            )
            events.insert(0, self._booking_event(booking, "no_show"))
            return booking, events

        return await self._guarded_write("mark_no_show", location_id, space_id, work)

    # ============ Expiry ============

    async def _expire(self, booking_id: uuid.UUID, now: datetime) -> Optional[Booking]:
        location_id, space_id = await self._booking_key(booking_id)

        async def work(db: AsyncSession) -> Tuple[Optional[Booking], Events]:
            ledger = SpaceAvailabilityLedger(db)
            await ledger.lock_space(location_id, space_id)
            booking = await self._load_booking(db, booking_id)
            if not lifecycle.reconcile_state(booking, now, self._active_grace):
                return booking, []

            location = await ledger.get_location(location_id)
            events: Events = [self._booking_event(booking, "expired")]
            change = await ledger.release_if_held(
                location, space_id, now, released_booking_id=booking.id
            )
            if change:
                _, projection_events = await self._projection_events(
                    db, location, now, [change], booking_id=booking.id, action="expired"
                )
                events.extend(projection_events)
            return booking, events

        return await self._guarded_write("expire_booking", location_id, space_id, work)

    async def _reconciled(self, booking: Booking, now: datetime) -> Booking:
        if lifecycle.expiry_target(booking, now, self._active_grace) is None:
            return booking
        return await self._expire(booking.id, now)

    async def expire_overdue_bookings(self, now: Optional[datetime] = None) -> int:
        """Sweep: expire every confirmed/active booking past its end. Returns count."""
        now = self._now(now)
        async with self.session_maker() as db:
            result = await db.execute(
                select(Booking.id).where(
                    or_(
                        and_(
                            Booking.status == BookingStatus.CONFIRMED.value,
                            Booking.end_time < now,
                        ),
                        and_(
                            Booking.status == BookingStatus.ACTIVE.value,
                            Booking.actual_exit_time.is_(None),
                            Booking.end_time < now - self._active_grace,
                        ),
                    )
                )
            )
            overdue = list(result.scalars().all())

        expired = 0
        for booking_id in overdue:
            booking = await self._expire(booking_id, now)
            if booking is not None and booking.status == BookingStatus.EXPIRED:
                expired += 1
        if expired:
            logger.info("Expiry sweep expired %d booking(s)", expired)
        return expired

    # ============ Reads ============

    async def get_booking(
        self,
        booking_id: uuid.UUID,
        requester_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        now = self._now(now)
        async with self.session_maker() as db:
            booking = await self._load_booking(db, booking_id)
            if requester_id is not None and booking.user_id != requester_id:
                location = await SpaceAvailabilityLedger(db).get_location(booking.location_id)
                if not location.is_admin(requester_id):
                    raise PermissionDeniedError("Access denied")
        return await self._reconciled(booking, now)

    async def list_bookings(
        self,
        user_id: Optional[str] = None,
        location_id: Optional[uuid.UUID] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
        now: Optional[datetime] = None,
    ) -> Tuple[int, List[Booking]]:
        now = self._now(now)
        filters = []
        if user_id:
            filters.append(Booking.user_id == user_id)
        if location_id:
            filters.append(Booking.location_id == location_id)
        if status:
            filters.append(Booking.status == _parse_enum(BookingStatus, status, "booking status").value)

        query = select(Booking)
        count_query = select(func.count(Booking.id))
        if filters:
            query = query.where(and_(*filters))
            count_query = count_query.where(and_(*filters))

        async with self.session_maker() as db:
            total = (await db.execute(count_query)).scalar() or 0
            result = await db.execute(
                query.order_by(Booking.created_at.desc()).offset(offset).limit(limit)
            )
            items = list(result.scalars().all())

        return total, [await self._reconciled(b, now) for b in items]

    async def get_available_slots(
        self,
        location_id: uuid.UUID,
        space_id: str,
        day: date,
    ) -> List[TimeSlot]:
        async with self.session_maker() as db:
            ledger = SpaceAvailabilityLedger(db)
            location = await ledger.get_location(location_id)
            space = ledger.require_space(location, space_id)
            return await ConflictChecker(db).available_slots(
                location, space, day, self.pricing, slot_minutes=self.settings.slot_minutes
            )

    async def project_occupancy(
        self,
        location_id: uuid.UUID,
        as_of: Optional[datetime] = None,
    ) -> OccupancyProjection:
        as_of = self._now(as_of)
        async with self.session_maker() as db:
            location = await SpaceAvailabilityLedger(db).get_location(location_id)
            return await AvailabilityProjector(db).project(location, as_of)

    async def get_location_availability(
        self,
        location_id: uuid.UUID,
        as_of: Optional[datetime] = None,
    ) -> LocationAvailability:
        as_of = self._now(as_of)
        async with self.session_maker() as db:
            location = await SpaceAvailabilityLedger(db).get_location(location_id)
            return await AvailabilityProjector(db).location_availability(location, as_of)

    # ============ Space status ============

    async def set_space_status(
        self,
        location_id: uuid.UUID,
        space_id: str,
        new_status: str,
        actor_id: str,
        now: Optional[datetime] = None,
    ) -> SpaceStatusUpdate:
        now = self._now(now)

        async def work(db: AsyncSession) -> Tuple[SpaceStatusUpdate, Events]:
            ledger = SpaceAvailabilityLedger(db)
            await ledger.lock_space(location_id, space_id)
            location = await ledger.get_location(location_id)
            if not location.is_admin(actor_id):
                raise PermissionDeniedError("You are not assigned to this location")
            change = await ledger.set_status(location, space_id, new_status, now)
            projection, events = await self._projection_events(
                db, location, now, [change], action="status_update"
            )
            return SpaceStatusUpdate(change, projection), events

        return await self._guarded_write("set_space_status", location_id, space_id, work)

    async def bulk_set_space_status(
        self,
        location_id: uuid.UUID,
        updates: Sequence[Dict[str, str]],
        actor_id: str,
        now: Optional[datetime] = None,
    ) -> BulkSpaceStatusUpdate:
        now = self._now(now)
        if not updates:
            raise ValidationError("Updates array is required")

        space_ids = [u.get("space_id", "") for u in updates]
        async with space_locks(
            location_id, space_ids, timeout=self.settings.space_lock_timeout_seconds
        ):
            async with self.session_maker.begin() as db:
                ledger = SpaceAvailabilityLedger(db)
                await ledger.lock_spaces(location_id, space_ids)
                location = await ledger.get_location(location_id)
                if not location.is_admin(actor_id):
                    raise PermissionDeniedError("You are not assigned to this location")
                result = await ledger.set_many(location, updates, now)
                projection, events = await self._projection_events(
                    db, location, now, result.updated, action="bulk_update"
                )
        await publish_all(self.sink, events)
        return BulkSpaceStatusUpdate(result, projection)

    # ============ Locations ============

    async def create_location(self, definition: LocationSpec) -> ParkingLocation:
        if not definition.name or not definition.address:
            raise ValidationError("Location name and address are required")
        if definition.hourly_rate < 0:
            raise ValidationError("Hourly rate cannot be negative")
        for value in (definition.opening_time, definition.closing_time):
            if not _HHMM.match(value):
                raise ValidationError(
                    f"Invalid time format '{value}'. Use HH:MM format",
                    details={"time": value},
                )
        try:
            pytz.timezone(definition.timezone)
        except pytz.UnknownTimeZoneError:
            raise ValidationError(
                f"Unknown timezone '{definition.timezone}'",
                details={"timezone": definition.timezone},
            )
        if not definition.spaces:
            raise ValidationError("A location needs at least one space")
        seen = set()
        for space in definition.spaces:
            if space.space_id in seen:
                raise ValidationError(
                    f"Duplicate space id '{space.space_id}'",
                    details={"space_id": space.space_id},
                )
            seen.add(space.space_id)
            _parse_enum(SpaceType, space.type, "space type")

        location = ParkingLocation(
            name=definition.name,
            address=definition.address,
            latitude=definition.latitude,
            longitude=definition.longitude,
            hourly_rate=definition.hourly_rate,
            opening_time=definition.opening_time,
            closing_time=definition.closing_time,
            is_24_hours=definition.is_24_hours,
            timezone=definition.timezone,
            spaces=[
                ParkingSpace(
                    space_id=s.space_id,
                    type=s.type,
                    status=SpaceStatus.AVAILABLE.value,
                    level=s.level,
                    section=s.section,
                )
                for s in definition.spaces
            ],
            admins=[LocationAdmin(user_id=a) for a in dict.fromkeys(definition.admin_ids)],
        )
        location.recount_available()
        async with self.session_maker.begin() as db:
            db.add(location)
        logger.info("Location %s created with %d spaces", location.id, location.total_spaces)
        return location

    async def get_location(self, location_id: uuid.UUID) -> ParkingLocation:
        async with self.session_maker() as db:
            return await SpaceAvailabilityLedger(db).get_location(location_id)


# Singleton instance
_booking_service: Optional[BookingService] = None


def get_booking_service() -> BookingService:
    """Get booking service singleton."""
    global _booking_service
    if _booking_service is None:
        from app.database import async_session_maker
        _booking_service = BookingService(async_session_maker)
    return _booking_service
