"""Load one branch's configuration (policy, forms, services, schedules, service points) for local development.

Usage: python scripts/seed_branch.py [path/to/branch.json]
"""
import asyncio
import json
import os
import sys
from datetime import time
from sqlalchemy.future import select

from branchqueue.core.db import SessionLocal, init_models
from branchqueue.modules.catalog.models import (
    Branch, BranchPolicy, Service, Schedule, ServicePoint, ServicePointService
)
from branchqueue.modules.forms.models import Form, FormField

async def create_form(db, form_data):
    """
    Creates a form and its ordered fields.
    """
    print(f"  - Creating form '{form_data['name']}'...")
    form = Form(name=form_data["name"], is_active=True)
    db.add(form)
    await db.flush()
    for order, field in enumerate(form_data.get("fields", [])):
        db.add(FormField(
            form_id=form.id,
            name=field["name"],
            label=field.get("label", field["name"]),
            type=field.get("type", "text"),
            required=field.get("required", False),
            options=field.get("options"),
            order=order,
        ))
    return form

async def create_schedules_for_service(db, service_id, hours):
    print(f"    - Creating weekly schedule for service {service_id}...")
    for block in hours:
        for day in block["days"]:  # 0 = Sunday
            db.add(Schedule(
                service_id=service_id,
                day_of_week=day,
                start_time=time.fromisoformat(block["start"]),
                end_time=time.fromisoformat(block["end"]),
                is_active=True,
            ))
    print("      ...schedule created.")

async def main(path: str):
    print("Starting branch seeding...")
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    await init_models()
    async with SessionLocal() as db:
        # --- Find or Create Branch ---
        res = await db.execute(select(Branch).where(Branch.name == data["branch"]))
        branch = res.scalars().first()
        if branch:
            print(f"Branch '{data['branch']}' already exists with ID: {branch.id}. Skipping.")
            return
        branch = Branch(name=data["branch"])
        db.add(branch)
        await db.flush()
        print(f"Created branch with ID: {branch.id}")

        if data.get("policy"):
            db.add(BranchPolicy(branch_id=branch.id, **data["policy"]))

        forms = {}
        for form_data in data.get("forms", []):
            forms[form_data["name"]] = await create_form(db, form_data)

        services = {}
        for svc in data.get("services", []):
            form = forms.get(svc.get("form"))
            service = Service(
                name=svc["name"],
                duration_minutes=svc["duration_minutes"],
                branch_id=branch.id,
                form_id=form.id if form else None,
            )
            db.add(service)
            await db.flush()
            services[svc["name"]] = service
            print(f"  - Created service '{service.name}' ({service.duration_minutes} min) with ID: {service.id}")
            await create_schedules_for_service(db, service.id, svc.get("hours", []))

        for sp_data in data.get("service_points", []):
            sp = ServicePoint(branch_id=branch.id, name=sp_data["name"])
            db.add(sp)
            await db.flush()
            for name in sp_data.get("services", []):
                db.add(ServicePointService(service_point_id=sp.id, service_id=services[name].id))
            print(f"  - Created service point '{sp.name}' with ID: {sp.id}")

        await db.commit()
    print("Branch seeding complete.")

if __name__ == "__main__":
    default = os.path.join(os.path.dirname(__file__), "sample_branch.json")
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else default))
