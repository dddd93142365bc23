from meza.services.legacy import normalize_legacy_record, normalize_legacy_records


def test_us_deduction_types_mapped():
    out = normalize_legacy_record({
        "employee_id": "E001",
        "deductions": [
            {"type": "federal_tax", "amount": "50.00"},
            {"type": "social_security", "amount": "40.00"},
            {"type": "garnishment", "amount": "10.00"},
            {"type": "income_tax", "amount": "1.00"},
        ],
        "employerTaxes": [{"type": "futa", "amount": "6.00"}],
    })
    assert [d["type"] for d in out["deductions"]] == ["income_tax", "inss_employee", "court_order", "income_tax"]
    assert out["employerTaxes"][0]["type"] == "inss_employer"


def test_ytd_fields_renamed_and_us_only_dropped():
    out = normalize_legacy_record({
        "ytdFederalTax": "300.00",
        "ytd_social_security": "120.00",
        "ytd_medicare": "20.00",
        "ytd_state_tax": "5.00",
    })
    assert out == {"ytd_income_tax": "300.00", "ytd_inss_employee": "120.00"}


def test_existing_tl_values_win_and_input_untouched():
    raw = {"ytd_federal_tax": "1.00", "ytd_income_tax": "2.00", "deductions": [{"type": "401k"}]}
    out = normalize_legacy_record(raw)
    assert out["ytd_income_tax"] == "2.00"
    assert out["deductions"] == [{"type": "other"}]
    assert raw["deductions"] == [{"type": "401k"}]


def test_tl_records_pass_through():
    rec = {"deductions": [{"type": "inss_employee", "amount": "40.00"}], "ytd_income_tax": "50.00"}
    assert normalize_legacy_records([rec]) == [rec]


def test_non_dict_entries_pass_through():
    out = normalize_legacy_record({
        "deductions": ["federal_tax", None, {"type": 7}, {"type": "medicare"}],
        "employer_taxes": [42, {"type": "futa"}],
    })
    assert out["deductions"] == ["federal_tax", None, {"type": 7}, {"type": "inss_employee"}]
    assert out["employer_taxes"] == [42, {"type": "inss_employer"}]
