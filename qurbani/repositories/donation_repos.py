# qurbani/repositories/donation_repos.py
"""
Async storage layer.

`DonationStore` wraps one AsyncSession that is already inside a transaction
(see `transaction`). It never commits or rolls back on its own; the unit of
work that created it decides.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Type, TypeVar

from sqlalchemy import case, delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from qurbani.domain.errors import ConstraintViolation
from qurbani.domain.models import DonationStatus, DonationType
from qurbani.domain.packing import COW_GROUP_SIZE
from qurbani.infrastructure.db.session import session_scope
from qurbani.infrastructure.models import (
    Agent, AgentDonation, CowGroup, CowShare, Donation, Donor, Media, Notification, now,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def donation_to_dict(donation: Donation, **extra) -> Dict[str, Any]:
    data = {
        "id": donation.id,
        "donor_id": donation.donor_id,
        "price": donation.price,
        "type": donation.type,
        "status": donation.status,
        "created_at": donation.created_at,
        "completed_at": donation.completed_at,
    }
    data.update(extra)
    return data


def _donor_fields(row) -> Dict[str, Any]:
    return {
        "first_name": row.first_name,
        "last_name": row.last_name,
        "whatsapp_number": row.whatsapp_number,
    }


class DonationStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ----------------------------
    # Cow groups
    # ----------------------------

    async def count_group_members(self, group_id: int) -> int:
        res = await self.db.execute(
            select(func.count(CowShare.donation_id)).where(CowShare.cow_group_id == group_id)
        )
        return res.scalar_one()

    async def count_dispatched_members(self, group_id: int) -> int:
        """Members that have left pending (handed to an agent or done)."""
        res = await self.db.execute(
            select(func.count(CowShare.donation_id))
            .join(Donation, Donation.id == CowShare.donation_id)
            .where(CowShare.cow_group_id == group_id, Donation.status != DonationStatus.PENDING.value)
        )
        return res.scalar_one()

    async def list_open_groups(self) -> List[Tuple[int, int]]:
        """
        (group_id, member_count) for groups below capacity, fullest first, then oldest.

        Groups with a member that is no longer pending are left out.
        """
        member_count = func.count(CowShare.donation_id)
        dispatched = func.sum(
            case((Donation.status != DonationStatus.PENDING.value, 1), else_=0)
        )
        res = await self.db.execute(
            select(CowGroup.id, member_count.label("member_count"))
            .outerjoin(CowShare, CowShare.cow_group_id == CowGroup.id)
            .outerjoin(Donation, Donation.id == CowShare.donation_id)
            .group_by(CowGroup.id, CowGroup.created_at)
            .having(member_count < COW_GROUP_SIZE)
            .having(func.coalesce(dispatched, 0) == 0)
            .order_by(member_count.desc(), CowGroup.created_at, CowGroup.id)
        )
        return [(row.id, row.member_count) for row in res]

    async def create_group(self) -> int:
        group = CowGroup()
        self.db.add(group)
        await self.db.flush()
        logger.info("Opened cow group %s", group.id)
        return group.id

    async def lock_group(self, group_id: int) -> bool:
        """Row-lock a group until the transaction ends. False if it does not exist."""
        res = await self.db.execute(
            select(CowGroup.id).where(CowGroup.id == group_id).with_for_update()
        )
        return res.scalar_one_or_none() is not None

    async def get_group(self, group_id: int) -> Optional[CowGroup]:
        return await self.db.get(CowGroup, group_id)

    async def get_share(self, donation_id: int) -> Optional[CowShare]:
        return await self.db.get(CowShare, donation_id)

    async def create_cow_share(self, donation_id: int, group_id: int) -> CowShare:
        """
        Link a cow donation to a group.

        Callers hold the group's row lock, so the member count read here is
        the one the insert is committed against.
        """
        donation = await self.db.get(Donation, donation_id)
        if donation is None or donation.type != DonationType.COW.value:
            raise ConstraintViolation(f"Donation {donation_id} is not a cow donation")
        if await self.get_share(donation_id) is not None:
            raise ConstraintViolation(f"Donation {donation_id} already belongs to a cow group")
        if await self.count_group_members(group_id) >= COW_GROUP_SIZE:
            raise ConstraintViolation(f"Cow group {group_id} already has {COW_GROUP_SIZE} shares")

        share = CowShare(donation_id=donation_id, cow_group_id=group_id)
        self.db.add(share)
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise ConstraintViolation(f"Could not add donation {donation_id} to group {group_id}") from e
        return share

    async def list_complete_pending_groups(self, lock: bool = False) -> List[Tuple[int, List[int]]]:
        """
        Groups with exactly COW_GROUP_SIZE members, all still pending, oldest group first.

        With lock=True the member donations are locked and re-checked, so a
        group touched by a concurrent writer drops out instead of being split.
        """
        pending_members = func.count(CowShare.donation_id)
        res = await self.db.execute(
            select(CowGroup.id)
            .join(CowShare, CowShare.cow_group_id == CowGroup.id)
            .join(Donation, Donation.id == CowShare.donation_id)
            .where(Donation.status == DonationStatus.PENDING.value)
            .group_by(CowGroup.id, CowGroup.created_at)
            .having(pending_members == COW_GROUP_SIZE)
            .order_by(CowGroup.created_at, CowGroup.id)
        )
        group_ids = list(res.scalars())
        if not group_ids:
            return []

        stmt = (
            select(CowShare.cow_group_id, Donation.id)
            .join(Donation, Donation.id == CowShare.donation_id)
            .where(CowShare.cow_group_id.in_(group_ids))
            .where(Donation.status == DonationStatus.PENDING.value)
            .order_by(Donation.created_at, Donation.id)
        )
        if lock:
            stmt = stmt.with_for_update(of=Donation)
        members: Dict[int, List[int]] = {gid: [] for gid in group_ids}
        for group_id, donation_id in await self.db.execute(stmt):
            members[group_id].append(donation_id)

        return [(gid, members[gid]) for gid in group_ids if len(members[gid]) == COW_GROUP_SIZE]

    async def list_groups_with_counts(self) -> List[Dict[str, Any]]:
        share_count = func.count(CowShare.donation_id)
        res = await self.db.execute(
            select(CowGroup.id, CowGroup.created_at, share_count.label("share_count"))
            .outerjoin(CowShare, CowShare.cow_group_id == CowGroup.id)
            .group_by(CowGroup.id, CowGroup.created_at)
            .order_by(CowGroup.created_at.desc(), CowGroup.id.desc())
        )
        return [dict(row) for row in res.mappings()]

    async def list_group_shares(self, group_id: int) -> List[Dict[str, Any]]:
        res = await self.db.execute(
            select(Donation.id, Donation.status, Donor.first_name, Donor.last_name, Donor.whatsapp_number)
            .join(CowShare, CowShare.donation_id == Donation.id)
            .join(Donor, Donor.id == Donation.donor_id)
            .where(CowShare.cow_group_id == group_id)
            .order_by(Donation.created_at, Donation.id)
        )
        return [
            {"donation_id": row.id, "status": row.status, "donor": _donor_fields(row)}
            for row in res
        ]

    # ----------------------------
    # Donations
    # ----------------------------

    async def create_donation(self, donor_id: int, price: float, type: str) -> Donation:
        donation = Donation(donor_id=donor_id, price=price, type=type, status=DonationStatus.PENDING.value)
        self.db.add(donation)
        await self.db.flush()
        return donation

    async def get_donation(self, donation_id: int, lock: bool = False) -> Optional[Donation]:
        stmt = select(Donation).where(Donation.id == donation_id)
        if lock:
            stmt = stmt.with_for_update()
        res = await self.db.execute(stmt)
        return res.scalar_one_or_none()

    def _donation_detail_query(self):
        media_count = (
            select(func.count(Media.id))
            .where(Media.donation_id == Donation.id)
            .correlate(Donation)
            .scalar_subquery()
        )
        return (
            select(
                Donation,
                Donor.first_name,
                Donor.last_name,
                Donor.whatsapp_number,
                CowShare.cow_group_id,
                media_count.label("media_count"),
            )
            .join(Donor, Donor.id == Donation.donor_id)
            .outerjoin(CowShare, CowShare.donation_id == Donation.id)
        )

    @staticmethod
    def _detail_row_to_dict(row) -> Dict[str, Any]:
        return donation_to_dict(
            row.Donation,
            cow_group_id=row.cow_group_id,
            media_count=row.media_count,
            **_donor_fields(row),
        )

    async def list_donations(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        stmt = self._donation_detail_query()
        if status is not None:
            stmt = stmt.where(Donation.status == status)
        res = await self.db.execute(stmt.order_by(Donation.created_at.desc(), Donation.id.desc()))
        return [self._detail_row_to_dict(row) for row in res]

    async def get_donation_detail(self, donation_id: int) -> Optional[Dict[str, Any]]:
        res = await self.db.execute(self._donation_detail_query().where(Donation.id == donation_id))
        row = res.first()
        return self._detail_row_to_dict(row) if row else None

    async def existing_donation_ids(self, donation_ids: Iterable[int]) -> List[int]:
        res = await self.db.execute(select(Donation.id).where(Donation.id.in_(list(donation_ids))))
        return list(res.scalars())

    async def list_pending_by_kind(self, kind: str, lock: bool = False) -> List[int]:
        """Pending donation ids of one type, oldest first."""
        stmt = (
            select(Donation.id)
            .where(Donation.type == kind, Donation.status == DonationStatus.PENDING.value)
            .order_by(Donation.created_at, Donation.id)
        )
        if lock:
            stmt = stmt.with_for_update()
        res = await self.db.execute(stmt)
        return list(res.scalars())

    async def set_status(self, donation_ids: Sequence[int], new_status: str, only_if: Optional[str] = None) -> int:
        """Bulk status change; rows not currently in `only_if` are left untouched. Returns rows changed."""
        if not donation_ids:
            return 0
        values = {"status": new_status}
        if new_status == DonationStatus.DONE.value:
            # rows already done keep their original completion time
            values["completed_at"] = case(
                (Donation.status == DonationStatus.DONE.value, Donation.completed_at), else_=now()
            )
        stmt = update(Donation).where(Donation.id.in_(list(donation_ids)))
        if only_if is not None:
            stmt = stmt.where(Donation.status == only_if)
        res = await self.db.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        return res.rowcount

    async def update_donation_status(self, donation: Donation, status: str) -> Donation:
        if status == DonationStatus.DONE.value and donation.status != status:
            donation.completed_at = now()
        donation.status = status
        await self.db.flush()
        return donation

    async def delete_donation(self, donation_id: int) -> None:
        for model in (AgentDonation, CowShare, Media, Notification):
            await self.db.execute(delete(model).where(model.donation_id == donation_id))
        await self.db.execute(delete(Donation).where(Donation.id == donation_id))

    async def dashboard_counts(self) -> Dict[str, Any]:
        pending = Donation.status == DonationStatus.PENDING.value
        res = await self.db.execute(
            select(
                func.sum(case((Donation.type == DonationType.SHEEP.value, 1), else_=0)).label("sheep"),
                func.sum(case((Donation.type == DonationType.COW.value, 1), else_=0)).label("cow"),
                func.coalesce(func.sum(Donation.price), 0).label("total_value"),
            ).where(pending)
        )
        row = res.one()
        return {
            "sheep": int(row.sheep or 0),
            "cow": int(row.cow or 0),
            "total_value": float(row.total_value or 0),
        }

    # ----------------------------
    # Donors
    # ----------------------------

    def _donor_stats_query(self):
        completed = func.sum(case((Donation.status == DonationStatus.DONE.value, 1), else_=0))
        return (
            select(
                Donor,
                func.count(Donation.id).label("donation_count"),
                completed.label("completed_donations"),
            )
            .outerjoin(Donation, Donation.donor_id == Donor.id)
            .group_by(Donor.id)
        )

    @staticmethod
    def _donor_row_to_dict(row) -> Dict[str, Any]:
        donor = row.Donor
        return {
            "id": donor.id,
            "first_name": donor.first_name,
            "last_name": donor.last_name,
            "whatsapp_number": donor.whatsapp_number,
            "created_at": donor.created_at,
            "donation_count": row.donation_count,
            "completed_donations": int(row.completed_donations or 0),
        }

    async def list_donors(self) -> List[Dict[str, Any]]:
        res = await self.db.execute(
            self._donor_stats_query().order_by(Donor.created_at.desc(), Donor.id.desc())
        )
        return [self._donor_row_to_dict(row) for row in res]

    async def get_donor_detail(self, donor_id: int) -> Optional[Dict[str, Any]]:
        res = await self.db.execute(self._donor_stats_query().where(Donor.id == donor_id))
        row = res.first()
        return self._donor_row_to_dict(row) if row else None

    async def get_donor(self, donor_id: int) -> Optional[Donor]:
        return await self.db.get(Donor, donor_id)

    async def create_donor(self, first_name: str, last_name: str, whatsapp_number: str) -> Donor:
        donor = Donor(first_name=first_name, last_name=last_name, whatsapp_number=whatsapp_number)
        self.db.add(donor)
        await self.db.flush()
        return donor

    async def update_donor(self, donor: Donor, **fields) -> Donor:
        for key, value in fields.items():
            setattr(donor, key, value)
        await self.db.flush()
        return donor

    async def delete_donor(self, donor_id: int) -> None:
        res = await self.db.execute(select(Donation.id).where(Donation.donor_id == donor_id))
        for donation_id in list(res.scalars()):
            await self.delete_donation(donation_id)
        await self.db.execute(delete(Donor).where(Donor.id == donor_id))

    async def list_donations_for_donor(self, donor_id: int) -> List[Dict[str, Any]]:
        media_count = (
            select(func.count(Media.id))
            .where(Media.donation_id == Donation.id)
            .correlate(Donation)
            .scalar_subquery()
        )
        res = await self.db.execute(
            select(Donation, media_count.label("media_count"))
            .where(Donation.donor_id == donor_id)
            .order_by(Donation.created_at.desc(), Donation.id.desc())
        )
        return [donation_to_dict(row.Donation, has_media=row.media_count > 0) for row in res]

    # ----------------------------
    # Agents and assignments
    # ----------------------------

    async def create_agent(self, name: str) -> Agent:
        agent = Agent(agent_name=name)
        self.db.add(agent)
        await self.db.flush()
        return agent

    async def get_agent(self, agent_id: int) -> Optional[Agent]:
        return await self.db.get(Agent, agent_id)

    async def update_agent(self, agent: Agent, agent_name: str) -> Agent:
        agent.agent_name = agent_name
        await self.db.flush()
        return agent

    async def delete_agent(self, agent_id: int) -> None:
        await self.db.execute(delete(AgentDonation).where(AgentDonation.agent_id == agent_id))
        await self.db.execute(delete(Agent).where(Agent.id == agent_id))

    async def clear_assignments(self, donation_ids: Sequence[int]) -> int:
        if not donation_ids:
            return 0
        res = await self.db.execute(
            delete(AgentDonation)
            .where(AgentDonation.donation_id.in_(list(donation_ids)))
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    async def create_assignments(self, pairs: Sequence[Tuple[int, int]]) -> None:
        """One parameterised bulk insert for all (agent_id, donation_id) pairs."""
        if not pairs:
            return
        assigned_at = now()
        await self.db.execute(
            insert(AgentDonation),
            [
                {"agent_id": agent_id, "donation_id": donation_id, "assigned_at": assigned_at}
                for agent_id, donation_id in pairs
            ],
        )

    async def list_assignments(self, agent_id: int, donation_ids: Sequence[int]) -> List[AgentDonation]:
        res = await self.db.execute(
            select(AgentDonation)
            .where(AgentDonation.agent_id == agent_id, AgentDonation.donation_id.in_(list(donation_ids)))
            .order_by(AgentDonation.id)
        )
        return list(res.scalars())

    async def agent_stats(self, agent_ids: Optional[Sequence[int]] = None) -> List[Dict[str, Any]]:
        """Agents with assignment counters, in agent id order."""
        def count_if(cond):
            return func.sum(case((cond, 1), else_=0))

        stmt = (
            select(
                Agent,
                func.count(AgentDonation.donation_id).label("total_donations"),
                count_if(Donation.status == DonationStatus.DONE.value).label("completed_donations"),
                count_if(Donation.status.in_([DonationStatus.PENDING.value, DonationStatus.SENDING.value]))
                .label("pending_donations"),
                count_if(Donation.type == DonationType.SHEEP.value).label("sheep_count"),
                count_if(Donation.type == DonationType.COW.value).label("cow_count"),
            )
            .outerjoin(AgentDonation, AgentDonation.agent_id == Agent.id)
            .outerjoin(Donation, Donation.id == AgentDonation.donation_id)
            .group_by(Agent.id)
            .order_by(Agent.id)
        )
        if agent_ids is not None:
            stmt = stmt.where(Agent.id.in_(list(agent_ids)))

        stats = []
        for row in await self.db.execute(stmt):
            total = row.total_donations
            completed = int(row.completed_donations or 0)
            stats.append({
                "id": row.Agent.id,
                "agent_name": row.Agent.agent_name,
                "created_at": row.Agent.created_at,
                "total_donations": total,
                "completed_donations": completed,
                "pending_donations": int(row.pending_donations or 0),
                "completion_percentage": round(completed / total * 100) if total else 0,
                "sheep_count": int(row.sheep_count or 0),
                "cow_count": int(row.cow_count or 0),
            })
        return stats

    async def list_agent_sheep(self, agent_id: int) -> List[Dict[str, Any]]:
        res = await self.db.execute(
            select(Donation, Donor.first_name, Donor.last_name, Donor.whatsapp_number)
            .join(AgentDonation, AgentDonation.donation_id == Donation.id)
            .join(Donor, Donor.id == Donation.donor_id)
            .where(AgentDonation.agent_id == agent_id, Donation.type == DonationType.SHEEP.value)
            .order_by(Donation.created_at, Donation.id)
        )
        return [donation_to_dict(row.Donation, **_donor_fields(row)) for row in res]

    async def list_agent_cow_groups(self, agent_id: int) -> Dict[int, List[Dict[str, Any]]]:
        """Every member of each group the agent holds at least one share of."""
        held_groups = (
            select(CowShare.cow_group_id)
            .join(AgentDonation, AgentDonation.donation_id == CowShare.donation_id)
            .where(AgentDonation.agent_id == agent_id)
            .distinct()
        )
        res = await self.db.execute(
            select(Donation, Donor.first_name, Donor.last_name, Donor.whatsapp_number, CowShare.cow_group_id)
            .join(CowShare, CowShare.donation_id == Donation.id)
            .join(Donor, Donor.id == Donation.donor_id)
            .where(CowShare.cow_group_id.in_(held_groups))
            .order_by(CowShare.cow_group_id, Donation.created_at, Donation.id)
        )
        groups: Dict[int, List[Dict[str, Any]]] = {}
        for row in res:
            groups.setdefault(row.cow_group_id, []).append(
                donation_to_dict(row.Donation, cow_group_id=row.cow_group_id, **_donor_fields(row))
            )
        return groups

    # ----------------------------
    # Media and notifications
    # ----------------------------

    async def create_media(self, donation_id: int, type: str, file_path: str) -> Media:
        media = Media(donation_id=donation_id, type=type, file_path=file_path)
        self.db.add(media)
        await self.db.flush()
        return media

    async def get_media(self, media_id: int) -> Optional[Media]:
        return await self.db.get(Media, media_id)

    async def list_media_for_donation(self, donation_id: int) -> List[Media]:
        res = await self.db.execute(
            select(Media).where(Media.donation_id == donation_id).order_by(Media.created_at, Media.id)
        )
        return list(res.scalars())

    async def delete_media(self, media_id: int) -> None:
        await self.db.execute(delete(Media).where(Media.id == media_id))

    async def create_notification(self, donation_id: int, message: str, sent: bool = False) -> Notification:
        notification = Notification(donation_id=donation_id, message=message, sent=sent)
        self.db.add(notification)
        await self.db.flush()
        return notification

    async def list_notifications(self) -> List[Notification]:
        res = await self.db.execute(
            select(Notification).order_by(Notification.created_at.desc(), Notification.id.desc())
        )
        return list(res.scalars())


# ----------------------------
# Unit of work
# ----------------------------

@asynccontextmanager
async def transaction(session_factory: async_sessionmaker):
    """Yield a DonationStore bound to a fresh transaction (commit on success, rollback on error)."""
    async with session_scope(session_factory) as session:
        yield DonationStore(session)


async def run_in_transaction(
    session_factory: async_sessionmaker,
    work: Callable[[DonationStore], Awaitable[T]],
    retries: int = 0,
    retry_on: Tuple[Type[BaseException], ...] = (),
) -> T:
    """
    Run `work` in its own transaction, starting over from scratch up to
    `retries` more times when it fails with one of `retry_on`.
    """
    attempt = 0
    while True:
        try:
            async with transaction(session_factory) as store:
                return await work(store)
        except retry_on as e:
            if attempt >= retries:
                raise
            attempt += 1
            logger.warning("Retrying transaction (%s/%s) after: %s", attempt, retries, e)
