from bikebusters.models.report import Manufacturer, MissingReport
from bikebusters.services.notifications import NotificationDispatcher, group_by_make


class BrokenMailer:
    def __init__(self) -> None:
        self.calls = 0

    def send(self, to: str, subject: str, body: str) -> None:
        self.calls += 1
        raise ConnectionError("smtp down")


def _report(db, bike, email: str) -> None:
    db.add(
        MissingReport(
            bike_id=bike.id,
            make=bike.make,
            model=bike.model,
            serial_number=bike.serial_number,
            member_email=email,
        )
    )
    db.commit()


def test_group_by_make_keeps_first_seen_order(make_bike):
    bikes = [make_bike(make="Cortina"), make_bike(make="VanMoof"), make_bike(make="Cortina")]
    grouped = group_by_make(bikes)
    assert list(grouped) == ["Cortina", "VanMoof"]
    assert [b.id for b in grouped["Cortina"]] == [bikes[0].id, bikes[2].id]


def test_plan_mixes_owner_and_manufacturer_messages(db, mailer, make_bike, return_location):
    db.add_all(
        [
            Manufacturer(name="Cortina", contact_email="recovered@cortina.example"),
            Manufacturer(name="VanMoof", contact_email="ops@vanmoof.example"),
        ]
    )
    db.commit()
    reported = make_bike(make="Cortina")
    _report(db, reported, "member@example.com")
    fleet = [make_bike(make="Cortina"), make_bike(make="VanMoof"), make_bike(make="Cortina")]

    plan = NotificationDispatcher(mailer).plan(db, [reported, *fleet], return_location)

    assert [(n.channel, n.to) for n in plan] == [
        ("b2c", "member@example.com"),
        ("b2b", "recovered@cortina.example"),
        ("b2b", "ops@vanmoof.example"),
    ]
    cortina = plan[1]
    assert cortina.bike_ids == (str(fleet[0].id), str(fleet[2].id))
    assert fleet[0].serial_number in cortina.body
    assert mailer.sent == []


def test_make_without_contact_is_skipped(db, mailer, make_bike, return_location):
    db.add(Manufacturer(name="Batavus", contact_email=None))
    db.commit()
    bikes = [make_bike(make="Batavus"), make_bike(make="Unknown Brand")]

    sent = NotificationDispatcher(mailer).notify_resolved(db, bikes, return_location)

    assert sent == []
    assert mailer.sent == []


def test_mailer_failure_does_not_stop_other_messages(db, make_bike, return_location):
    first, second = make_bike(), make_bike()
    _report(db, first, "a@example.com")
    _report(db, second, "b@example.com")
    mailer = BrokenMailer()

    sent = NotificationDispatcher(mailer).notify_resolved(db, [first, second], return_location)

    assert len(sent) == 2
    assert mailer.calls == 2


def test_empty_batch_plans_nothing(db, mailer, return_location):
    assert NotificationDispatcher(mailer).plan(db, [], return_location) == []
