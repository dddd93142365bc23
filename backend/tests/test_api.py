import uuid


def _tenant(client, code="DILI01"):
    r = client.post("/tenants", json={
        "code": code,
        "name": "Dili Coffee",
        "legal_name": "Dili Coffee Lda",
        "tin_number": "7654321",
        "company_account_number": "0001112223",
        "signatory_name": "Joana Belo",
    })
    assert r.status_code == 201, r.text
    return r.json()


def _employee(client, tid, code="E001", **extra):
    body = {
        "code": code,
        "first_name": "Ana",
        "last_name": "Pereira",
        "hire_date": "2024-01-01",
        "monthly_salary": "1000.00",
        "bank_name": "BNU",
        "bank_account_number": "BNU-100",
        "tin": "TIN-9",
    }
    body.update(extra)
    r = client.post(f"/tenants/{tid}/employees", json=body)
    assert r.status_code == 201, r.text
    return r.json()


def _january(client, tid):
    r = client.post(f"/tenants/{tid}/payroll/runs", json={
        "period_start": "2025-01-01",
        "period_end": "2025-01-31",
        "pay_date": "2025-01-31",
    })
    assert r.status_code == 201, r.text
    return r.json()


def test_health_and_version(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["db"]["status"] == "ok"
    assert client.get("/version").json()["app"] == "Meza Payroll Backend"


def test_tenant_crud_and_duplicates(client):
    t = _tenant(client)
    assert client.post("/tenants", json={"code": "DILI01", "name": "Again"}).status_code == 409

    r = client.patch(f"/tenants/{t['id']}", json={"signatory_position": "Manager"})
    assert r.status_code == 200
    assert r.json()["signatory_position"] == "Manager"

    codes = [x["code"] for x in client.get("/tenants").json()]
    assert codes == ["DILI01"]


def test_unknown_and_inactive_tenants_are_404(client):
    assert client.get(f"/tenants/{uuid.uuid4()}/employees").status_code == 404

    t = _tenant(client)
    client.patch(f"/tenants/{t['id']}", json={"is_active": False})
    assert client.get(f"/tenants/{t['id']}/employees").status_code == 404


def test_employee_routes(client):
    t = _tenant(client)
    emp = _employee(client, t["id"])
    r = client.post(f"/tenants/{t['id']}/employees", json={
        "code": "E001", "first_name": "X", "last_name": "Y",
    })
    assert r.status_code == 409

    r = client.patch(f"/tenants/{t['id']}/employees/{emp['id']}", json={"department": "Roastery"})
    assert r.json()["department"] == "Roastery"

    assert client.get(f"/tenants/{t['id']}/employees/{uuid.uuid4()}").status_code == 404

    other = _tenant(client, code="BAUCAU")
    assert client.get(f"/tenants/{other['id']}/employees/{emp['id']}").status_code == 404


def test_tax_config_and_holidays(client):
    t = _tenant(client)
    tid = t["id"]

    r = client.post(f"/tenants/{tid}/payroll-configs", json={
        "value_json": {"minimum_wage": "130"}, "effective_from": "2025-01-01",
    })
    assert r.status_code == 201
    r = client.post(f"/tenants/{tid}/payroll-configs", json={
        "value_json": {"no_such_field": 1}, "effective_from": "2025-02-01",
    })
    assert r.status_code == 400
    for bad in ({"wit_rate": "ten percent"}, {"voluntary_deduction_cap_pct": "-10"}):
        r = client.post(f"/tenants/{tid}/payroll-configs", json={"value_json": bad, "effective_from": "2025-02-01"})
        assert r.status_code == 400, bad
    assert len(client.get(f"/tenants/{tid}/payroll-configs").json()) == 1

    cfg = client.get(f"/tenants/{tid}/tax-config", params={"on": "2025-03-01"}).json()["config"]
    assert cfg["minimum_wage"] == "130"
    before = client.get(f"/tenants/{tid}/tax-config", params={"on": "2024-12-31"}).json()["config"]
    assert before["minimum_wage"] == "115"

    r = client.post(f"/tenants/{tid}/holidays", json={"holiday_date": "2025-06-06", "name": "Eid al-Adha"})
    assert r.status_code == 200
    override_id = r.json()["id"]
    names = {h["date"]: h["name"] for h in client.get(f"/tenants/{tid}/holidays", params={"year": 2025}).json()}
    assert names["2025-06-06"] == "Eid al-Adha"

    assert client.delete(f"/tenants/{tid}/holidays/{override_id}").status_code == 204


def test_full_payroll_cycle(client):
    t = _tenant(client)
    tid = t["id"]
    emp = _employee(client, tid)
    _employee(client, tid, code="E002", payment_method="cash", bank_account_number=None)
    run = _january(client, tid)
    rid = run["id"]
    assert run["status"] == "draft"

    # approve before compute
    assert client.post(f"/tenants/{tid}/payroll/runs/{rid}/approve").status_code == 409

    r = client.post(f"/tenants/{tid}/payroll/runs/{rid}/compute", json={
        "inputs": [{"employee_id": emp["id"], "overtime_hours": "10"}],
    })
    assert r.status_code == 200, r.text
    assert r.json()["employees"] == 2

    records = client.get(f"/tenants/{tid}/payroll/runs/{rid}/records").json()
    by_code = {x["employee_code"]: x for x in records}
    assert by_code["E001"]["gross_pay"] == "1078.60"
    assert by_code["E002"]["net_pay"] == "910.00"

    detail = client.get(f"/tenants/{tid}/payroll/records/{by_code['E001']['id']}").json()
    assert [i["code"] for i in detail["items"]][:2] == ["OVERTIME", "REGULAR"]

    r = client.post(f"/tenants/{tid}/payroll/runs/{rid}/approve", json={"approved_by": "Joana"})
    assert r.json()["status"] == "approved"
    assert r.json()["approved_by"] == "Joana"

    # bank files work from approval
    r = client.post(f"/tenants/{tid}/bank-transfers/runs/{rid}")
    assert r.status_code == 201, r.text
    body = r.json()
    assert [f["bank_code"] for f in body["files"]] == ["BNU"]
    assert body["skipped"][0]["reason"] == "paid by cash"
    file_id = body["files"][0]["id"]

    dl = client.get(f"/tenants/{tid}/bank-transfers/{file_id}/download")
    assert dl.status_code == 200
    assert dl.headers["content-type"].startswith("text/csv")
    assert "attachment" in dl.headers["content-disposition"]
    assert dl.text.startswith("H,0001112223,Dili Coffee Lda,20250131,1,")

    r = client.patch(f"/tenants/{tid}/bank-transfers/{file_id}", json={"status": "submitted"})
    assert r.json()["status"] == "submitted"

    r = client.post(f"/tenants/{tid}/payroll/runs/{rid}/pay")
    assert r.json()["status"] == "paid"
    assert client.post(f"/tenants/{tid}/payroll/runs/{rid}/cancel").status_code == 409

    summary = client.get(f"/tenants/{tid}/payroll/runs/{rid}/summary").json()
    assert summary["employee_count"] == 2
    assert summary["by_payment_method"] == {"bank_transfer": 1, "cash": 1}

    html = client.get(f"/tenants/{tid}/payroll/records/{by_code['E001']['id']}/payslip.html")
    assert html.status_code == 200
    assert "Payslip" in html.text
    assert "1,078.60" in html.text

    assert [x["id"] for x in client.get(f"/tenants/{tid}/payroll/runs", params={"status": "paid"}).json()] == [rid]


def test_tax_routes(client):
    t = _tenant(client)
    tid = t["id"]
    emp = _employee(client, tid)
    rid = _january(client, tid)["id"]
    client.post(f"/tenants/{tid}/payroll/runs/{rid}/compute")
    client.post(f"/tenants/{tid}/payroll/runs/{rid}/approve")
    client.post(f"/tenants/{tid}/payroll/runs/{rid}/pay")

    wit = client.get(f"/tenants/{tid}/tax/returns/monthly-wit", params={"period": "2025-01"}).json()
    assert wit["total_wit_withheld"] == "50.00"
    assert client.get(f"/tenants/{tid}/tax/returns/monthly-wit", params={"period": "2025-1x"}).status_code == 400

    inss = client.get(f"/tenants/{tid}/tax/returns/inss-monthly", params={"period": "2025-01"}).json()
    assert inss["total_contributions"] == "100.00"

    annual = client.get(f"/tenants/{tid}/tax/returns/annual-wit", params={"year": 2025}).json()
    assert annual["total_employees_in_year"] == 1

    cert = client.get(f"/tenants/{tid}/tax/certificates/{emp['id']}", params={"year": 2025})
    assert cert.status_code == 200
    assert cert.json()["authorized_signatory"] == "Joana Belo"
    assert client.get(f"/tenants/{tid}/tax/certificates/{emp['id']}", params={"year": 2024}).status_code == 404

    assert client.post(f"/tenants/{tid}/tax/filings", json={
        "filing_type": "annual_wit", "period": "2025-01",
    }).status_code == 422

    r = client.post(f"/tenants/{tid}/tax/filings", json={"filing_type": "monthly_wit", "period": "2025-01"})
    assert r.status_code == 200, r.text
    filing = r.json()
    assert filing["total_wit_withheld"] == "50.00"
    assert filing["due_date"] == "2025-02-17"

    r = client.post(f"/tenants/{tid}/tax/filings/{filing['id']}/file", json={
        "submission_method": "etax", "receipt_number": "ATTL-1", "filed_date": "2025-02-10",
    })
    assert r.json()["status"] == "filed"
    assert r.json()["receipt_number"] == "ATTL-1"

    listed = client.get(f"/tenants/{tid}/tax/filings", params={"type": "monthly_wit"}).json()
    assert [f["id"] for f in listed] == [filing["id"]]

    csv_resp = client.get(f"/tenants/{tid}/tax/filings/{filing['id']}/export.csv")
    assert csv_resp.status_code == 200
    assert 'filename="monthly_wit_2025-01.csv"' in csv_resp.headers["content-disposition"]
    lines = csv_resp.text.splitlines()
    assert lines[0].startswith("code,full_name,tin_number")
    assert lines[1].startswith("E001,Ana Pereira,TIN-9,True,1000.00,500.00,50.00")

    due = client.get(f"/tenants/{tid}/tax/due-soon", params={"months": 1})
    assert due.status_code == 200
    assert all("urgency" in i for i in due.json())
    assert set(client.get(f"/tenants/{tid}/tax/summary").json()) == {
        "pending", "overdue", "filed_this_month", "next_due",
    }


def test_loan_routes(client):
    t = _tenant(client)
    tid = t["id"]
    emp = _employee(client, tid)

    r = client.post(f"/tenants/{tid}/loans", json={
        "employee_id": emp["id"], "amount": "300", "repayment_amount": "100",
    })
    assert r.status_code == 201, r.text
    loan = r.json()
    assert loan["status"] == "pending"

    r = client.post(f"/tenants/{tid}/loans/{loan['id']}/approve", params={"start_date": "2025-01-01"})
    assert r.json()["status"] == "active"
    assert client.post(f"/tenants/{tid}/loans/{loan['id']}/approve").status_code == 409

    assert len(client.get(f"/tenants/{tid}/loans", params={"status": "active"}).json()) == 1
    assert client.post(f"/tenants/{tid}/loans/{uuid.uuid4()}/cancel").status_code == 404


def test_stateless_calculate(client):
    r = client.post("/payroll/calculate", json={"monthly_salary": "1000", "year": 2025})
    assert r.status_code == 200
    body = r.json()
    assert body["tax_year"] == 2025
    assert body["income_tax"] == "50.00"
    assert body["net_pay"] == "910.00"

    r = client.post("/payroll/weekly-breakdown", json={"monthly_salary": "1000", "weekly_working_days": [5, 5, 5, 5, 3]})
    weeks = r.json()["weeks"]
    assert [w["amount"] for w in weeks] == ["217.39", "217.39", "217.39", "217.39", "130.44"]
    assert r.json()["total"] == "1000.00"

    r = client.post("/payroll/weekly-breakdown", json={"monthly_salary": "1000", "weekly_working_days": [5, -1]})
    assert r.status_code == 400

    r = client.post("/payroll/calculate", json={"monthly_salary": "1000", "absence_hours": "-5"})
    assert r.status_code == 422


def test_legacy_normalize_route(client):
    t = _tenant(client)
    r = client.post(
        f"/tenants/{t['id']}/payroll/legacy/normalize",
        json=[{"deductions": [{"type": "medicare", "amount": "3.00"}, "3.00", None]}],
    )
    assert r.status_code == 200
    assert r.json()[0]["deductions"] == [{"type": "inss_employee", "amount": "3.00"}, "3.00", None]
