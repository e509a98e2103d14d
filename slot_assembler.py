"""
Merge signup records into the empty slot template for a period.
"""
import logging

from models import Role

logger = logging.getLogger(__name__)


def _find_slot(slots_by_date, record):
    slot = slots_by_date.get(record.service_date)
    if slot is not None:
        return slot
    # Legacy records stored the display string instead of the ISO date
    for candidate in slots_by_date.values():
        if candidate.display_date in (record.service_date, record.display_date):
            logger.debug(f"Matched {record.record_id} by display date {candidate.display_date!r}")
            return candidate
    return None


def assemble_slots(template, records):
    """Fill `template` slots with occupants from `records`.

    Records dated outside the template are dropped from this view, as are
    records with roles the slot does not have. Returns slots sorted by date.
    """
    slots_by_date = {slot.date: slot for slot in template}

    for record in records:
        slot = _find_slot(slots_by_date, record)
        if slot is None:
            logger.debug(f"Skipping signup {record.record_id}: {record.service_date!r} not in period")
            continue

        role = Role.parse(record.role)
        if role is Role.ATTENDANCE:
            status = (record.attendance_status or "").lower() or "yes"
            slot.attendance.append({"name": record.name, "status": status})
        elif role is None:
            logger.info(f"Unknown role {record.role!r} on signup {record.record_id}, not assigning")
        elif not slot.accepts(role):
            logger.info(f"Role {role.value} is not offered on {slot.date}, not assigning {record.record_id}")
        else:
            if slot.role_slots[role] is not None:
                logger.warning(
                    f"Slot {slot.date}/{role.value} double-booked: "
                    f"{slot.role_slots[role].record_id} and {record.record_id}"
                )
            slot.role_slots[role] = record.to_occupant()

    return sorted(slots_by_date.values(), key=lambda slot: slot.date)


def summarize_slots(slots):
    """Filled and open roles per slot, with totals, for the schedule summary."""
    rows = []
    filled_total = open_total = 0
    for slot in slots:
        filled = {role.value: slot.role_slots[role].name for role in slot.filled_roles()}
        open_roles = [role.value for role in slot.open_roles()]
        filled_total += len(filled)
        open_total += len(open_roles)
        rows.append({
            "date": slot.date,
            "displayDate": slot.display_date,
            "notes": slot.notes,
            "filled": filled,
            "open": open_roles,
            "attendance": len(slot.attendance),
            "fullyStaffed": not open_roles,
        })
    return {
        "slots": rows,
        "totals": {
            "slots": len(rows),
            "filled": filled_total,
            "open": open_total,
            "fullyStaffed": sum(1 for row in rows if row["fullyStaffed"]),
        },
    }
