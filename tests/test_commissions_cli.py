import pytest

import commissions


def test_parse_args_collects_repeated_locations():
    args = commissions.parse_args(["--month", "2025-03", "--organization", "1", "--location", "2", "--location", "3"])
    assert args.locations == [2, 3]
    assert args.save is False


def test_invalid_month_exits():
    with pytest.raises(SystemExit):
        commissions.main(["--month", "2025-3-1", "--organization", "1"])


def test_unknown_organization_exits(tmp_path):
    with pytest.raises(SystemExit, match="not found"):
        commissions.main(["--month", "2025-03", "--organization", "404", "--out", str(tmp_path)])


def test_cli_exports_and_saves(app_factory, tmp_path, capsys):
    from commissiondesk import crud

    org = app_factory.organization(name="Studio Two")
    trainer = app_factory.trainer(org, app_factory.profile(org))
    app_factory.sessions(trainer, 20)

    commissions.main(
        ["--month", "2025-03", "--organization", str(org.id), "--out", str(tmp_path), "--save", "--preview"]
    )

    output = capsys.readouterr().out
    assert "Studio Two: March 2025" in output
    assert "Total commission: USD 1,000.00" in output
    assert (tmp_path / f"commissions_{org.id}_2025-03.xlsx").exists()
    assert (tmp_path / f"commissions_{org.id}_2025-03.csv").exists()
    assert crud.count_calculations(app_factory.session, trainer.id) == 1
