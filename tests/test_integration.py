"""Integration tests for end-to-end workflows."""

import re

from payledger.cli.main import cli


def test_full_workflow(cli_runner, temp_db, fixtures_dir):
    """Test complete workflow: account -> payments -> import -> status -> report."""
    db = ["--db-path", temp_db.database_path]
    camt = fixtures_dir / "camt"

    # Step 1: Create the bank account the statements belong to
    result = cli_runner.invoke(cli, [*db, "account", "create", "FI79 9359 4446 8357 68", "Club account"])
    assert result.exit_code == 0

    # Step 2: Create an invoice with the reference used in the statements
    result = cli_runner.invoke(
        cli,
        [
            *db,
            "payment",
            "create",
            "--title",
            "Membership 2024",
            "--debt",
            "D-1=10.00",
            "--reference",
            "RF78 0000 1337 0024 0042 0015",
            "--date",
            "2024-01-01",
            "--payer-id",
            "P-1",
            "--payer-name",
            "Teppo Testaaja",
        ],
    )
    assert result.exit_code == 0
    invoice_id = re.search(r"ID: (\d+)", result.output).group(1)

    # Step 3: Import the January statement; the invoice gets paid
    result = cli_runner.invoke(cli, [*db, "statement", "import", str(camt / "single-payment.xml")])
    assert result.exit_code == 0
    assert "Registered: 1" in result.output

    result = cli_runner.invoke(cli, [*db, "payment", "show", invoice_id])
    assert "Status:    paid" in result.output
    assert "dc2705347c720a4bc1484cf99671a499" in result.output

    # Step 4: February has a payment for an invoice that does not exist yet
    result = cli_runner.invoke(cli, [*db, "statement", "import", str(camt / "multiple-payments.xml")])
    assert result.exit_code == 0
    assert "Unmatched: 3" in result.output

    result = cli_runner.invoke(
        cli,
        [*db, "payment", "create", "--title", "Sauna", "--debt", "D-2=25.00", "--reference", "12344", "--date", "2024-02-01"],
    )
    assert result.exit_code == 0
    assert "Registered 1 earlier bank transaction(s)" in result.output
    sauna_id = re.search(r"ID: (\d+)", result.output).group(1)

    # Step 5: The overlapping statement pays the January invoice a second time
    result = cli_runner.invoke(cli, [*db, "statement", "import", str(camt / "overlapping.xml"), "--workers", "2"])
    assert result.exit_code == 0
    assert "Registered: 1" in result.output

    result = cli_runner.invoke(cli, [*db, "payment", "show", invoice_id])
    assert "Balance:   EUR 25.00" in result.output
    assert "Status:    mispaid" in result.output

    result = cli_runner.invoke(cli, [*db, "payment", "show", sauna_id])
    assert "Status:    paid" in result.output

    # Step 6: Only the sauna bill and the unknown deposit are left unregistered
    result = cli_runner.invoke(cli, [*db, "transaction", "list", "--unregistered"])
    assert "tx-feb-002" in result.output
    assert "tx-feb-003" in result.output
    assert "tx-feb-001" not in result.output

    # Step 7: The January report, as of the end of January, shows the invoice as paid
    result = cli_runner.invoke(
        cli,
        [
            *db,
            "report",
            "ledger",
            "--start-date",
            "2024-01-01",
            "--end-date",
            "2024-01-31",
            "--as-of",
            "2024-02-01",
            "--group-by",
            "payer",
        ],
    )
    assert result.exit_code == 0
    assert "Teppo Testaaja (P-1)" in result.output
    assert "EUR 0.00 | paid" in result.output
