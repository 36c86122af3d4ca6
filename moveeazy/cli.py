"""
moveeazy: operator CLI

Usage examples:
  moveeazy serve
  moveeazy init-db
  moveeazy create-admin --email admin@moveeazy.com --password 'secret123'
  moveeazy hash-password 'secret123'
  moveeazy diagnose-earnings --driver-id 3
"""
from __future__ import annotations

import argparse
from typing import List, Optional

import uvicorn
from sqlalchemy import func

from .auth import hash_password, upsert_admin
from .config import settings
from .database import engine, session_scope
from .lifecycle import COMPLETED
from .logging_config import configure_logging
from .models import Base, Ride, Transaction
from .routers.rides import EARNING_TYPE


def cmd_serve(args: argparse.Namespace) -> int:
    configure_logging()
    uvicorn.run("moveeazy.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def cmd_init_db(_: argparse.Namespace) -> int:
    Base.metadata.create_all(bind=engine)
    print(f"[init-db] tables ready on {engine.url.render_as_string(hide_password=True)}")
    return 0


def cmd_create_admin(args: argparse.Namespace) -> int:
    if len(args.password) < 6:
        raise SystemExit("Password must be at least 6 characters")
    with session_scope() as db:
        admin = upsert_admin(db, email=args.email.strip().lower(), password=args.password, name=args.name, role=args.role)
        print(f"[create-admin] {admin.email} (id={admin.id}, role={admin.role})")
    return 0


def cmd_hash_password(args: argparse.Namespace) -> int:
    print(hash_password(args.password))
    return 0


def cmd_diagnose_earnings(args: argparse.Namespace) -> int:
    problems = 0
    with session_scope() as db:
        q = db.query(Ride).filter(Ride.status == COMPLETED)
        if args.driver_id is not None:
            q = q.filter(Ride.driver_id == args.driver_id)
        rides = q.order_by(Ride.completed_at.desc(), Ride.id.desc()).limit(args.limit).all()
        print(f"Recent completed rides ({len(rides)}):")
        for r in rides:
            has_txn = (
                db.query(Transaction.id)
                .filter(Transaction.ride_id == r.id, Transaction.transaction_type == EARNING_TYPE)
                .first()
                is not None
            )
            flags = []
            if r.final_fare_cents is None:
                flags.append("no final fare")
            if not has_txn:
                flags.append("no earning transaction")
            problems += bool(flags)
            print(
                f"  ride #{r.id} driver={r.driver_id} est={r.estimated_fare_cents} "
                f"final={r.final_fare_cents} completed_at={r.completed_at}"
                + (f"  !! {', '.join(flags)}" if flags else "")
            )

        fare = func.coalesce(Ride.final_fare_cents, Ride.estimated_fare_cents)
        agg = db.query(func.count(Ride.id), func.coalesce(func.sum(fare), 0)).filter(Ride.status == COMPLETED)
        if args.driver_id is not None:
            agg = agg.filter(Ride.driver_id == args.driver_id)
        count, total = agg.one()
        print(f"Earnings aggregate: rides={count} total={int(total or 0)} {settings.CURRENCY_CODE} (minor units)")

        tq = db.query(Transaction).filter(Transaction.transaction_type == EARNING_TYPE)
        if args.driver_id is not None:
            tq = tq.join(Ride, Ride.id == Transaction.ride_id).filter(Ride.driver_id == args.driver_id)
        txns = tq.order_by(Transaction.created_at.desc(), Transaction.id.desc()).limit(args.limit).all()
        print(f"Earning transactions ({len(txns)}):")
        for t in txns:
            print(f"  txn #{t.id} ride #{t.ride_id} amount={t.amount_cents} at {t.created_at}")

    print("OK: no inconsistencies found" if not problems else f"Found {problems} ride(s) needing attention")
    return 1 if problems else 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="moveeazy", description="MoveEazy operator CLI")
    sp = ap.add_subparsers(dest="cmd", required=True)

    p_serve = sp.add_parser("serve", help="Run the API with uvicorn")
    p_serve.add_argument("--host", default=settings.APP_HOST)
    p_serve.add_argument("--port", type=int, default=settings.APP_PORT)
    p_serve.add_argument("--reload", action="store_true")
    p_serve.set_defaults(func=cmd_serve)

    p_init = sp.add_parser("init-db", help="Create all tables")
    p_init.set_defaults(func=cmd_init_db)

    p_admin = sp.add_parser("create-admin", help="Create an admin or reset its password")
    p_admin.add_argument("--email", required=True)
    p_admin.add_argument("--password", required=True)
    p_admin.add_argument("--name", default=None)
    p_admin.add_argument("--role", default="admin", choices=["admin", "super_admin"])
    p_admin.set_defaults(func=cmd_create_admin)

    p_hash = sp.add_parser("hash-password", help="Print a bcrypt hash")
    p_hash.add_argument("password")
    p_hash.set_defaults(func=cmd_hash_password)

    p_diag = sp.add_parser("diagnose-earnings", help="Check completed rides against earning records")
    p_diag.add_argument("--driver-id", type=int, default=None)
    p_diag.add_argument("--limit", type=int, default=5)
    p_diag.set_defaults(func=cmd_diagnose_earnings)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    ns = build_parser().parse_args(argv)
    return ns.func(ns)


if __name__ == "__main__":
    raise SystemExit(main())
