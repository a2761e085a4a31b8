from sqlalchemy import select

from conftest import ACHIEVEMENT, BLOCKER_DESCRIPTION, LONG_REASON, auth_headers, make_user
from milestone.core.auth import create_refresh_token
from milestone.models import Attendance
from milestone.models.enums import Role

API = "/api/v1"
GOAL_55 = "Finish the CSV export endpoint and cover it with tests!"
SHORT_REASON = "Staging was down most of the afternoon.."


def error_of(response):
    body = response.json()
    assert body["success"] is False
    return body["error"]


async def set_goal(client, user, goal=GOAL_55):
    response = await client.post(f"{API}/standups/goal", json={"today_goal": goal}, headers=auth_headers(user))
    assert response.status_code == 200, response.text
    return response.json()["data"]


async def submit(client, user, standup_id, **overrides):
    payload = {
        "standup_id": standup_id,
        "achievement_title": "Export shipped",
        "achievement_desc": ACHIEVEMENT,
        "goal_status": "ACHIEVED",
    }
    payload.update(overrides)
    return await client.post(f"{API}/standups/submit", json=payload, headers=auth_headers(user))


async def test_goal_can_only_be_set_once(client, employee):
    standup = await set_goal(client, employee)
    assert standup["status"] == "GOAL_SET"
    assert standup["sequence"] == 1

    response = await client.post(
        f"{API}/standups/goal",
        json={"today_goal": GOAL_55, "standup_id": standup["id"]},
        headers=auth_headers(employee)
    )
    assert response.status_code == 400
    assert error_of(response)["code"] == "GOAL_ALREADY_SET"


async def test_not_achieved_needs_a_real_reason(client, employee):
    standup = await set_goal(client, employee)

    response = await submit(client, employee, standup["id"], goal_status="NOT_ACHIEVED", not_achieved_reason=SHORT_REASON)
    assert response.status_code == 400
    assert error_of(response)["code"] == "VALIDATION_ERROR"

    response = await submit(client, employee, standup["id"], goal_status="NOT_ACHIEVED", not_achieved_reason=LONG_REASON)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "SUBMITTED"


async def test_standup_can_only_be_approved_once(client, employee, manager):
    standup = await set_goal(client, employee)
    assert (await submit(client, employee, standup["id"])).status_code == 200

    url = f"{API}/standups/{standup['id']}/review"
    response = await client.put(url, json={"action": "approve"}, headers=auth_headers(manager))
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "APPROVED"

    response = await client.put(url, json={"action": "approve"}, headers=auth_headers(manager))
    assert response.status_code == 400
    assert error_of(response)["code"] == "INVALID_STATUS"


async def test_blocker_alerts_follow_severity(client, employee, manager, task_queue, transport):
    for severity in ("CRITICAL", "LOW"):
        response = await client.post(
            f"{API}/blockers",
            json={
                "title": f"{severity} staging outage",
                "description": BLOCKER_DESCRIPTION,
                "category": "TECHNICAL",
                "severity": severity,
                "support_required": "Infra on call",
            },
            headers=auth_headers(employee)
        )
        assert response.status_code == 201

    await task_queue.drain()

    assert sorted(transport.channels()) == ["#admins", "#managers", "#managers"]
    admin_alerts = [m for m in transport.messages if m["channel"] == "#admins"]
    assert "CRITICAL" in admin_alerts[0]["text"]


async def test_missing_token_is_unauthorized(client):
    response = await client.get(f"{API}/standups/today")
    assert response.status_code == 401
    assert error_of(response)["code"] == "UNAUTHORIZED"


async def test_employee_cannot_review(client, employee):
    response = await client.get(f"{API}/standups/pending-reviews", headers=auth_headers(employee))
    assert response.status_code == 403
    assert error_of(response)["code"] == "FORBIDDEN"


async def test_request_validation_uses_envelope(client, employee):
    response = await submit(client, employee, 1, achievement_title="x" * 101)
    assert response.status_code == 400
    error = error_of(response)
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"][0]["field"] == "achievement_title"


async def test_unknown_standup_is_not_found(client, employee):
    response = await client.get(f"{API}/standups/999", headers=auth_headers(employee))
    assert response.status_code == 404
    assert error_of(response)["code"] == "NOT_FOUND"


async def test_login_records_attendance_and_refresh_issues_tokens(client, employee, db):
    response = await client.post(f"{API}/auth/login", json={"email": "EMMA@example.com", "password": "Password123"})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["user"]["email"] == "emma@example.com"

    attendance = (await db.execute(select(Attendance).where(Attendance.user_id == employee.id))).scalar_one()
    assert attendance.status == "PRESENT"

    response = await client.post(f"{API}/auth/refresh", json={"refresh_token": data["refresh_token"]})
    assert response.status_code == 200
    assert response.json()["data"]["access_token"]

    response = await client.post(f"{API}/auth/refresh", json={"refresh_token": data["access_token"]})
    assert error_of(response)["code"] == "INVALID_REFRESH_TOKEN"


async def test_login_failures(client, db, employee):
    response = await client.post(f"{API}/auth/login", json={"email": "emma@example.com", "password": "wrong"})
    assert response.status_code == 401
    assert error_of(response)["code"] == "AUTH_FAILED"

    await make_user(db, "gone@example.com", is_active=False)
    response = await client.post(f"{API}/auth/login", json={"email": "gone@example.com", "password": "Password123"})
    assert response.status_code == 403
    assert error_of(response)["code"] == "USER_INACTIVE"


async def test_refresh_for_deactivated_user_is_rejected(client, db):
    gone = await make_user(db, "gone@example.com", is_active=False)
    response = await client.post(f"{API}/auth/refresh", json={"refresh_token": create_refresh_token(gone.id)})
    assert response.status_code == 403


async def test_me_includes_today_attendance(client, employee):
    response = await client.get(f"{API}/auth/me", headers=auth_headers(employee))
    data = response.json()["data"]
    assert data["user"]["id"] == employee.id
    assert data["attendance"]["status"] == "PRESENT"


async def test_admin_user_management(client, admin, employee):
    headers = auth_headers(admin)
    payload = {
        "email": "new@example.com",
        "password": "Password123",
        "name": "New Person",
        "role": Role.EMPLOYEE.value,
        "department": "Design",
    }
    response = await client.post(f"{API}/users", json=payload, headers=headers)
    assert response.status_code == 201
    created = response.json()["data"]

    response = await client.post(f"{API}/users", json=payload, headers=headers)
    assert response.status_code == 409
    assert error_of(response)["code"] == "DUPLICATE_EMAIL"

    response = await client.delete(f"{API}/users/{admin.id}", headers=headers)
    assert error_of(response)["code"] == "SELF_DELETE"

    response = await client.delete(f"{API}/users/{created['id']}", headers=headers)
    assert response.json()["data"]["is_active"] is False

    response = await client.post(f"{API}/users/{created['id']}/reactivate", headers=headers)
    assert response.json()["data"]["is_active"] is True
    response = await client.post(f"{API}/users/{created['id']}/reactivate", headers=headers)
    assert error_of(response)["code"] == "ALREADY_ACTIVE"

    response = await client.get(f"{API}/users", headers=auth_headers(employee))
    assert response.status_code == 403


async def test_weekly_report_endpoint(client, admin, employee):
    response = await client.get(f"{API}/reports/weekly", headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["data"]["report"]["executive_summary"]


async def test_goal_suggestions_fall_back_to_department_defaults(client, employee):
    response = await client.post(f"{API}/ai/suggest-goals", headers=auth_headers(employee))
    assert len(response.json()["data"]["suggestions"]) == 3


async def test_analytics_overview_is_admin_only(client, admin, manager, employee):
    response = await client.get(f"{API}/analytics/overview", headers=auth_headers(admin))
    assert response.status_code == 200
    today = response.json()["data"]["today"]
    assert today["total_employees"] == 1
    assert today["goals_set"] == 0

    response = await client.get(f"{API}/analytics/overview", headers=auth_headers(manager))
    assert response.status_code == 403


async def test_department_analytics_for_managers(client, manager, employee):
    await set_goal(client, employee)

    response = await client.get(f"{API}/analytics/department/Engineering", headers=auth_headers(manager))
    assert response.status_code == 200
    data = response.json()["data"]
    assert sorted(u["email"] for u in data["employees"]) == ["bob@example.com", "emma@example.com"]
    assert data["metrics"]["total_standups"] == 1


async def test_productivity_trends_period(client, admin):
    response = await client.get(f"{API}/analytics/productivity-trends", params={"period": "90d"}, headers=auth_headers(admin))
    assert response.status_code == 200
    assert len(response.json()["data"]["trends"]) == 90

    response = await client.get(f"{API}/analytics/productivity-trends", params={"period": "1y"}, headers=auth_headers(admin))
    assert response.status_code == 400
    assert error_of(response)["code"] == "VALIDATION_ERROR"
