#!/usr/bin/env python3
"""
Defect Tracker — Demo Data Seed Script.

Creates one user per role, a demo project with three stages and a handful
of defects walked through the lifecycle, so history, reports and exports
have something to show.

Usage:
    python scripts/seed_demo_data.py
    python scripts/seed_demo_data.py --append
    python scripts/seed_demo_data.py --verbose
"""

import argparse
import sys

sys.path.insert(0, ".")

from defect_tracker import create_app
from defect_tracker.models import db
from defect_tracker.models.auth import User
from defect_tracker.models.project import Project
from defect_tracker.services import auth_service, defect_service, project_service

DEMO_PASSWORD = "Demo2026!"

USERS = [
    {"username": "maria.manager", "role": "manager"},
    {"username": "erik.engineer", "role": "engineer"},
    {"username": "emma.engineer", "role": "engineer"},
    {"username": "otto.observer", "role": "observer"},
]

STAGES = [
    {"name": "Design", "order": 1, "status": "completed"},
    {"name": "Construction", "order": 2, "status": "in_progress"},
    {"name": "Handover", "order": 3, "status": "pending"},
]

# (title, priority, stage index, assignee username, status path)
DEFECTS = [
    ("Cracked facade panel on level 3", "high", 1, "erik.engineer", ["in_progress", "review", "closed"]),
    ("Missing fire-stop sealant in riser", "critical", 1, "emma.engineer", ["in_progress"]),
    ("Door hardware does not match schedule", "medium", 2, "erik.engineer", ["in_progress", "review"]),
    ("Paint blemish in lobby", "low", 2, None, []),
    ("Drawing revision mismatch on grid C", "medium", 0, "emma.engineer", ["cancelled"]),
]


def _clear():
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()


def seed_all(app, append=False, verbose=False):
    with app.app_context():
        if not append:
            print("🗑️  Clearing existing data...")
            _clear()

        print("\n👤 Seeding demo users...")
        users = {}
        for u_data in USERS:
            existing = User.query.filter_by(username=u_data["username"]).first()
            if existing:
                users[existing.username] = existing
                print(f"   ⏩ User '{existing.username}' already exists")
                continue
            user = auth_service.register(u_data["username"], DEMO_PASSWORD, u_data["role"])
            users[user.username] = user
            print(f"   ✅ User '{user.username}' (role={user.role}, pw={DEMO_PASSWORD})")
        db.session.commit()

        manager = users["maria.manager"]

        print("\n📦 Creating project & stages...")
        project = project_service.create_project(
            {"name": "Harbour Office Tower", "status": "active",
             "description": "Twelve-storey office build with ground-floor retail."},
            actor_id=manager.id,
        )
        stages = [
            project_service.create_stage({**s, "project_id": project.id}) for s in STAGES
        ]
        db.session.commit()
        print(f"   ✅ Project: {project.name} (ID: {project.id}), {len(stages)} stages")

        print("\n🐞 Creating defects...")
        for title, priority, stage_idx, assignee, path in DEFECTS:
            reporter = users["erik.engineer"] if assignee != "erik.engineer" else users["emma.engineer"]
            defect = defect_service.create_defect(
                {
                    "project_id": project.id,
                    "stage_id": stages[stage_idx].id,
                    "title": title,
                    "priority": priority,
                    "assignee_id": users[assignee].id if assignee else None,
                },
                actor_id=reporter.id,
            )
            for status in path:
                defect_service.update_defect(defect.id, {"status": status}, actor_id=manager.id)
            defect_service.add_comment(defect.id, f"Logged during {stages[stage_idx].name} walk-down.",
                                       actor_id=reporter.id)
            db.session.commit()
            if verbose:
                print(f"   • #{defect.id} [{defect.status}] {defect.title}")
        print(f"   ✅ {len(DEFECTS)} defects")

        print(f"\n   📊 Totals → Users: {User.query.count()}, Projects: {Project.query.count()}")


def main():
    parser = argparse.ArgumentParser(description="Seed demo data")
    parser.add_argument("--append", action="store_true")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    app = create_app()
    print(f"🎯 DB: {app.config['SQLALCHEMY_DATABASE_URI']}\n")
    seed_all(app, append=args.append, verbose=args.verbose)


if __name__ == "__main__":
    main()
