"""
Database layer - properties, tenants, tenancies and rent payments
"""
import sqlite3
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence
import logging

from rent_application.rent_accounting.core.errors import RecordNotFound, StoreUnavailable
from rent_application.rent_accounting.core.models import (
    PaymentStatus,
    RentRecord,
    RentRecordDraft,
    RentRecordKey,
    Tenancy,
    TenancyStatus,
)
from rent_application.rent_accounting.utils.date_utils import parse_date

logger = logging.getLogger(__name__)

DATABASE_PATH = "rent_management.db"


def configure(database_path):
    """Point the module at a database file (called by the app factory)"""
    global DATABASE_PATH
    DATABASE_PATH = str(database_path)
    Path(DATABASE_PATH).parent.mkdir(parents=True, exist_ok=True)


@contextmanager
def get_db_connection():
    """Context manager for database connections"""
    conn = sqlite3.connect(DATABASE_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


@contextmanager
def _connection(conn=None):
    """Reuse the caller's connection (and its transaction) or open a new one"""
    if conn is not None:
        yield conn
    else:
        with get_db_connection() as new_conn:
            yield new_conn


def init_database():
    """Initialize database tables"""
    with get_db_connection() as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS properties (
                property_id INTEGER PRIMARY KEY AUTOINCREMENT,
                address TEXT NOT NULL,
                details TEXT DEFAULT '',
                is_active INTEGER DEFAULT 1,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS tenants (
                tenant_id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                phone TEXT DEFAULT '',
                id_proof TEXT DEFAULT '',
                notes TEXT DEFAULT '',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS tenancies (
                tenancy_id INTEGER PRIMARY KEY AUTOINCREMENT,
                property_id INTEGER NOT NULL,
                tenant_id INTEGER NOT NULL,
                start_date DATE NOT NULL,
                end_date DATE,
                monthly_rent TEXT NOT NULL,
                advance_amount TEXT DEFAULT '0',
                status TEXT DEFAULT 'active',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (property_id) REFERENCES properties(property_id),
                FOREIGN KEY (tenant_id) REFERENCES tenants(tenant_id)
            )
        """)

        # Amounts are stored as decimal text; one record per tenancy per month
        conn.execute("""
            CREATE TABLE IF NOT EXISTS rent_payments (
                rent_id INTEGER PRIMARY KEY AUTOINCREMENT,
                tenancy_id INTEGER NOT NULL,
                rent_month DATE NOT NULL,
                rent_amount TEXT NOT NULL,
                payment_status TEXT NOT NULL DEFAULT 'pending',
                paid_date DATE,
                amount_paid TEXT DEFAULT '0',
                remarks TEXT DEFAULT '',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE (tenancy_id, rent_month),
                FOREIGN KEY (tenancy_id) REFERENCES tenancies(tenancy_id) ON DELETE CASCADE
            )
        """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_tenancies_property ON tenancies(property_id)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_rent_payments_status ON rent_payments(payment_status)")
    logger.info("✅ Database initialized (properties, tenants, tenancies, rent_payments)")


# ============ ROW MAPPING ============
def _row_to_record(row) -> RentRecord:
    return RentRecord(
        rent_id=row['rent_id'],
        tenancy_id=row['tenancy_id'],
        period_start=parse_date(row['rent_month']),
        amount_due=Decimal(row['rent_amount']),
        status=PaymentStatus(row['payment_status']),
        paid_date=parse_date(row['paid_date']),
        amount_paid=Decimal(row['amount_paid'] or '0'),
        remarks=row['remarks'] or '',
        created_at=row['created_at'],
    )


def _row_to_tenancy(row) -> Tenancy:
    return Tenancy(
        tenancy_id=row['tenancy_id'],
        property_id=row['property_id'],
        tenant_id=row['tenant_id'],
        start_date=parse_date(row['start_date']),
        end_date=parse_date(row['end_date']),
        monthly_rent=Decimal(row['monthly_rent']),
        advance_amount=Decimal(row['advance_amount'] or '0'),
        status=TenancyStatus(row['status']),
        created_at=row['created_at'],
    )


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


# ============ PAYMENT STORE ============
class SqlitePaymentStore:
    """
    Payment store over the rent_payments table

    Pass a connection to run every call inside the caller's transaction;
    without one each call commits on its own. sqlite errors surface as
    StoreUnavailable.
    """

    def __init__(self, conn=None):
        self.conn = conn

    def find(self, tenancy_id: int, statuses: Optional[Iterable[PaymentStatus]] = None) -> List[RentRecord]:
        query = "SELECT * FROM rent_payments WHERE tenancy_id = ?"
        params: list = [tenancy_id]
        if statuses is not None:
            values = [PaymentStatus(s).value for s in statuses]
            if not values:
                return []
            query += f" AND payment_status IN ({', '.join('?' for _ in values)})"
            params.extend(values)
        query += " ORDER BY rent_month"
        try:
            with _connection(self.conn) as conn:
                rows = conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Could not read rent records for tenancy {tenancy_id}: {e}") from e
        return [_row_to_record(row) for row in rows]

    def insert_many(self, drafts: Sequence[RentRecordDraft]) -> None:
        if not drafts:
            return
        rows = [
            (
                d.tenancy_id,
                d.period_start.isoformat(),
                str(d.amount_due),
                d.status.value,
                _iso(d.paid_date),
                str(d.amount_paid),
                d.remarks,
            )
            for d in drafts
        ]
        try:
            with _connection(self.conn) as conn:
                conn.executemany(
                    """INSERT INTO rent_payments
                       (tenancy_id, rent_month, rent_amount, payment_status, paid_date, amount_paid, remarks)
                       VALUES (?, ?, ?, ?, ?, ?, ?)""",
                    rows,
                )
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Could not insert {len(rows)} rent record(s): {e}") from e
        logger.debug(f"💾 Inserted {len(rows)} rent record(s)")

    def delete_many(self, tenancy_id: int, keys: Sequence[RentRecordKey]) -> None:
        """Delete pending records by key; paid and partial rows are never touched here"""
        months = [key.period_start.isoformat() for key in keys if key.tenancy_id == tenancy_id]
        if not months:
            return
        try:
            with _connection(self.conn) as conn:
                conn.execute(
                    f"""DELETE FROM rent_payments
                        WHERE tenancy_id = ? AND payment_status = 'pending'
                        AND rent_month IN ({', '.join('?' for _ in months)})""",
                    [tenancy_id, *months],
                )
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Could not delete rent records for tenancy {tenancy_id}: {e}") from e
        logger.debug(f"🗑️ Deleted {len(months)} pending rent record(s) for tenancy {tenancy_id}")


# ============ RENT PAYMENTS ============
def get_rent_payment(rent_id: int, conn=None) -> Optional[RentRecord]:
    with _connection(conn) as c:
        row = c.execute("SELECT * FROM rent_payments WHERE rent_id = ?", (rent_id,)).fetchone()
        return _row_to_record(row) if row else None


def save_rent_payment(record: RentRecord, conn=None):
    """
    Persist status, paid date, paid amount and remarks of an existing record

    Raises RecordNotFound when the row is gone, e.g. a pending record removed
    by a reconcile after it was loaded.
    """
    with _connection(conn) as c:
        cursor = c.execute(
            """UPDATE rent_payments
               SET payment_status = ?, paid_date = ?, amount_paid = ?, remarks = ?
               WHERE rent_id = ?""",
            (record.status.value, _iso(record.paid_date), str(record.amount_paid), record.remarks, record.rent_id),
        )
        if cursor.rowcount == 0:
            raise RecordNotFound(f"Rent record {record.rent_id} not found")


def list_outstanding_payments(conn=None) -> List[Dict]:
    """Pending and partial records with their property and tenant, newest month first"""
    with _connection(conn) as c:
        rows = c.execute("""
            SELECT rp.*, p.property_id, p.address, tn.tenant_id, tn.name AS tenant_name, tn.phone
            FROM rent_payments rp
            JOIN tenancies t ON t.tenancy_id = rp.tenancy_id
            JOIN properties p ON p.property_id = t.property_id
            JOIN tenants tn ON tn.tenant_id = t.tenant_id
            WHERE rp.payment_status != 'paid'
            ORDER BY rp.rent_month DESC, rp.rent_id DESC
        """).fetchall()
    results = []
    for row in rows:
        results.append({
            'record': _row_to_record(row),
            'property_id': row['property_id'],
            'address': row['address'],
            'tenant_id': row['tenant_id'],
            'tenant_name': row['tenant_name'],
            'phone': row['phone'],
        })
    return results


# ============ PROPERTIES ============
def create_property(address: str, details: str = '', conn=None) -> int:
    with _connection(conn) as c:
        cursor = c.execute("INSERT INTO properties (address, details) VALUES (?, ?)", (address, details or ''))
        return cursor.lastrowid


def get_property(property_id: int, conn=None) -> Optional[Dict]:
    with _connection(conn) as c:
        row = c.execute("SELECT * FROM properties WHERE property_id = ?", (property_id,)).fetchone()
        if not row:
            return None
        prop = dict(row)
        prop['is_active'] = bool(prop['is_active'])
        return prop


def list_properties(include_inactive: bool = False, conn=None) -> List[Dict]:
    """Properties with their active tenancy id (if any) and outstanding-record count"""
    query = """
        SELECT p.*,
               (SELECT t.tenancy_id FROM tenancies t
                WHERE t.property_id = p.property_id AND t.end_date IS NULL) AS active_tenancy_id,
               (SELECT COUNT(*) FROM rent_payments rp JOIN tenancies t ON t.tenancy_id = rp.tenancy_id
                WHERE t.property_id = p.property_id AND rp.payment_status != 'paid') AS pending_count
        FROM properties p
    """
    if not include_inactive:
        query += " WHERE p.is_active = 1"
    query += " ORDER BY p.property_id DESC"
    with _connection(conn) as c:
        rows = c.execute(query).fetchall()
    properties = []
    for row in rows:
        prop = dict(row)
        prop['is_active'] = bool(prop['is_active'])
        prop['occupied'] = prop['active_tenancy_id'] is not None
        properties.append(prop)
    return properties


def update_property(property_id: int, data: Dict, conn=None):
    allowed = {k: data[k] for k in ('address', 'details', 'is_active') if k in data}
    if not allowed:
        return
    if 'is_active' in allowed:
        allowed['is_active'] = 1 if allowed['is_active'] else 0
    assignments = ', '.join(f"{k} = ?" for k in allowed)
    with _connection(conn) as c:
        c.execute(f"UPDATE properties SET {assignments} WHERE property_id = ?", (*allowed.values(), property_id))


def delete_property(property_id: int, conn=None):
    with _connection(conn) as c:
        c.execute("DELETE FROM properties WHERE property_id = ?", (property_id,))


# ============ TENANTS ============
TENANT_FIELDS = ('name', 'phone', 'id_proof', 'notes')


def create_tenant(name: str, phone: str = '', id_proof: str = '', notes: str = '', conn=None) -> int:
    with _connection(conn) as c:
        cursor = c.execute(
            "INSERT INTO tenants (name, phone, id_proof, notes) VALUES (?, ?, ?, ?)",
            (name, phone or '', id_proof or '', notes or ''),
        )
        return cursor.lastrowid


def get_tenant(tenant_id: int, conn=None) -> Optional[Dict]:
    with _connection(conn) as c:
        row = c.execute("SELECT * FROM tenants WHERE tenant_id = ?", (tenant_id,)).fetchone()
        return dict(row) if row else None


def list_tenants(conn=None) -> List[Dict]:
    with _connection(conn) as c:
        rows = c.execute("SELECT * FROM tenants ORDER BY name").fetchall()
        return [dict(r) for r in rows]


def update_tenant(tenant_id: int, data: Dict, conn=None):
    allowed = {k: data[k] for k in TENANT_FIELDS if k in data}
    if not allowed:
        return
    assignments = ', '.join(f"{k} = ?" for k in allowed)
    with _connection(conn) as c:
        c.execute(f"UPDATE tenants SET {assignments} WHERE tenant_id = ?", (*allowed.values(), tenant_id))


# ============ TENANCIES ============
def insert_tenancy(tenancy: Tenancy, conn=None) -> int:
    with _connection(conn) as c:
        cursor = c.execute(
            """INSERT INTO tenancies (property_id, tenant_id, start_date, end_date, monthly_rent, advance_amount, status)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                tenancy.property_id,
                tenancy.tenant_id,
                tenancy.start_date.isoformat(),
                _iso(tenancy.end_date),
                str(tenancy.monthly_rent),
                str(tenancy.advance_amount),
                tenancy.status.value,
            ),
        )
        return cursor.lastrowid


def save_tenancy(tenancy: Tenancy, conn=None):
    with _connection(conn) as c:
        c.execute(
            """UPDATE tenancies
               SET tenant_id = ?, start_date = ?, end_date = ?, monthly_rent = ?, advance_amount = ?, status = ?
               WHERE tenancy_id = ?""",
            (
                tenancy.tenant_id,
                tenancy.start_date.isoformat(),
                _iso(tenancy.end_date),
                str(tenancy.monthly_rent),
                str(tenancy.advance_amount),
                tenancy.status.value,
                tenancy.tenancy_id,
            ),
        )


def get_tenancy(tenancy_id: int, conn=None) -> Optional[Tenancy]:
    with _connection(conn) as c:
        row = c.execute("SELECT * FROM tenancies WHERE tenancy_id = ?", (tenancy_id,)).fetchone()
        return _row_to_tenancy(row) if row else None


def get_active_tenancy(property_id: int, conn=None) -> Optional[Tenancy]:
    with _connection(conn) as c:
        row = c.execute(
            "SELECT * FROM tenancies WHERE property_id = ? AND end_date IS NULL ORDER BY tenancy_id DESC",
            (property_id,),
        ).fetchone()
        return _row_to_tenancy(row) if row else None


def list_tenancies(property_id: Optional[int] = None, active: Optional[bool] = None, conn=None) -> List[Tenancy]:
    query = "SELECT * FROM tenancies WHERE 1 = 1"
    params: list = []
    if property_id is not None:
        query += " AND property_id = ?"
        params.append(property_id)
    if active is True:
        query += " AND end_date IS NULL"
    elif active is False:
        query += " AND end_date IS NOT NULL"
    query += " ORDER BY start_date DESC, tenancy_id DESC"
    with _connection(conn) as c:
        rows = c.execute(query, params).fetchall()
        return [_row_to_tenancy(r) for r in rows]


# ============ DASHBOARD ============
def count_rows(conn=None) -> Dict[str, int]:
    """Counts for the dashboard: active properties, occupied properties, tenants"""
    with _connection(conn) as c:
        properties = c.execute("SELECT COUNT(*) FROM properties WHERE is_active = 1").fetchone()[0]
        occupied = c.execute("""
            SELECT COUNT(DISTINCT t.property_id) FROM tenancies t
            JOIN properties p ON p.property_id = t.property_id
            WHERE t.end_date IS NULL AND p.is_active = 1
        """).fetchone()[0]
        tenants = c.execute("SELECT COUNT(*) FROM tenants").fetchone()[0]
    return {'properties': properties, 'occupied': occupied, 'tenants': tenants}
