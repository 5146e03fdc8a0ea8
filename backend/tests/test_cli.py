"""CLI command tests (flask system / users / credits / ledger)."""

from gearbook.models import Role, Section, User
from gearbook.services import session_service


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "init", "--admin-email", "Root@Example.org"])
    assert result.exit_code == 0, result.output
    assert "PASS Created admin user: root@example.org" in result.output

    again = runner.invoke(args=["system", "init", "--admin-email", "root@example.org"])
    assert again.exit_code == 0
    assert "already exists" in again.output
    assert "(0 grants added)" in again.output

    assert db_session.query(Role).count() == 3
    assert db_session.query(Section).filter_by(is_system=True).count() == 1
    assert db_session.query(User).count() == 1


def test_users_create_and_duplicate(app, db_session, setup_roles):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["users", "create", "--email", "cli@example.org", "--credits", "25"])
    assert result.exit_code == 0, result.output
    assert "credits: 25" in result.output

    duplicate = runner.invoke(args=["users", "create", "--email", "cli@example.org"])
    assert duplicate.exit_code == 1
    assert "already exists" in duplicate.output


def test_issue_token(app, db_session, member):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["users", "issue-token", member.email])
    assert result.exit_code == 0

    context = session_service.validate_session(db_session, result.output.strip())
    assert context.user.id == member.id

    missing = runner.invoke(args=["users", "issue-token", "ghost@example.org"])
    assert missing.exit_code == 1


def test_credits_adjust(app, db_session, member):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["credits", "adjust", "--reason", "Lost strap", "--", str(member.id), "-20"])
    assert result.exit_code == 0, result.output
    assert "balance: 80" in result.output

    too_much = runner.invoke(args=["credits", "adjust", "--reason", "Oops", "--", str(member.id), "-500"])
    assert too_much.exit_code == 1
    assert too_much.output.startswith("FAIL")


def test_ledger_verify(app, db_session, member):
    runner = app.test_cli_runner()

    assert runner.invoke(args=["ledger", "verify"]).exit_code == 0

    db_session.query(User).filter_by(id=member.id).update({"credit_balance": 999}, synchronize_session=False)
    db_session.commit()

    result = runner.invoke(args=["ledger", "verify"])
    assert result.exit_code == 1
    assert f"FAIL User {member.id}: balance 999 != ledger 100" in result.output
