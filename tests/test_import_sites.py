import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from sites.models import Site

pytestmark = pytest.mark.django_db


@pytest.fixture
def sites_csv(tmp_path):
    path = tmp_path / "sites.csv"
    path.write_text(
        "name,location,latitude,longitude,power_details,transmission_details\n"
        "KTM-001,Thamel,27.7152341234,85.3123,NEA grid,Fiber\n"
        "KTM-002,Kirtipur,,,Solar hybrid,Microwave\n"
        "KTM-003,Patan,95.0,85.3,,\n"
        ",No name,27.7,85.3,,\n"
    )
    return path


def test_import_sites_creates_valid_rows(sites_csv, capsys):
    call_command("import_sites", str(sites_csv))

    assert sorted(Site.objects.values_list("name", flat=True)) == ["KTM-001", "KTM-002"]

    located = Site.objects.get(name="KTM-001")
    assert float(located.latitude) == 27.715234
    assert located.transmission_details == "Fiber"
    assert Site.objects.get(name="KTM-002").has_coordinates is False

    output = capsys.readouterr()
    assert "2 created, 0 updated, 2 skipped" in output.out


def test_import_sites_skips_or_updates_existing(sites_csv, user):
    Site.objects.create(name="KTM-001", location="Old address", created_by=user)

    call_command("import_sites", str(sites_csv))
    assert Site.objects.get(name="KTM-001").location == "Old address"

    call_command("import_sites", str(sites_csv), "--update")
    assert Site.objects.get(name="KTM-001").location == "Thamel"


def test_import_sites_requires_columns(tmp_path):
    path = tmp_path / "bad.csv"
    path.write_text("title,lat\nx,1\n")

    with pytest.raises(CommandError, match="Missing columns"):
        call_command("import_sites", str(path))


def test_import_sites_missing_file(tmp_path):
    with pytest.raises(CommandError):
        call_command("import_sites", str(tmp_path / "nope.csv"))


def test_import_sites_skips_rows_with_unreadable_coordinates(tmp_path, capsys):
    path = tmp_path / "typo.csv"
    path.write_text(
        "name,location,latitude,longitude\n"
        "A,Ward 1,abc,85.3\n"
        "B,Ward 2,27.7,85.3\n"
    )

    call_command("import_sites", str(path))

    assert list(Site.objects.values_list("name", flat=True)) == ["B"]
    output = capsys.readouterr()
    assert "row 2: invalid coordinates, skipped" in output.err
    assert "1 created, 0 updated, 1 skipped" in output.out
