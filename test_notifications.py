from models import ResourceType, SignupRecord
from notifications import (
    MailDispatcher,
    build_error_notification,
    build_signup_notification,
    format_date_for_subject,
    route_recipients,
    send_quietly,
)
from conftest import FOOD_COORDINATOR, OPERATOR


def make_record(**overrides):
    data = dict(
        record_id="rec1",
        service_date="2025-12-07",
        display_date="December 7, 2025",
        name="Ann Smith",
        email="ann@gmail.com",
        role="backup",
    )
    data.update(overrides)
    return SignupRecord(**data)


def test_liturgist_and_greeter_copy_the_operator():
    for resource_type in (ResourceType.LITURGISTS, ResourceType.GREETERS):
        assert route_recipients(resource_type, "ann@gmail.com", OPERATOR) == ([OPERATOR], [])


def test_operator_is_not_copied_on_their_own_signup():
    assert route_recipients(ResourceType.GREETERS, "Sam@SamuelHolley.com", OPERATOR) == ([], [])


def test_food_routing():
    assert route_recipients(ResourceType.FOOD, "ann@gmail.com", OPERATOR, FOOD_COORDINATOR) == (
        [FOOD_COORDINATOR], [OPERATOR],
    )
    # Coordinator signing up is not copied on their own email
    assert route_recipients(ResourceType.FOOD, FOOD_COORDINATOR, OPERATOR, FOOD_COORDINATOR) == ([], [OPERATOR])
    # Signers on the operator's domain already see the operator's inbox
    assert route_recipients(ResourceType.FOOD, "kay@samuelholley.com", OPERATOR, FOOD_COORDINATOR) == (
        [FOOD_COORDINATOR], [],
    )
    assert route_recipients(ResourceType.FOOD, "ann@gmail.com", OPERATOR, None) == ([], [OPERATOR])


def test_confirmation_escapes_user_input():
    notification = build_signup_notification(
        ResourceType.LITURGISTS,
        make_record(name="<script>alert(1)</script>", notes="Tom & Jerry"),
        OPERATOR,
    )

    assert "<script>" not in notification.html_body
    assert "&lt;script&gt;" in notification.html_body
    assert "Tom &amp; Jerry" in notification.html_body
    assert notification.subject.startswith("Backup Liturgist Sign-up Confirmed:")
    assert notification.reply_to == OPERATOR


def test_iso_display_dates_are_reformatted():
    assert format_date_for_subject("2025-12-07T08:00:00.000Z") == "December 7, 2025"
    assert format_date_for_subject("December 7, 2025") == "December 7, 2025"


def test_error_notification_without_resource_type():
    notification = build_error_notification(None, "Busy Volunteer Check Failed", ValueError("bad"), OPERATOR)

    assert notification.to == [OPERATOR]
    assert notification.subject == "ERROR: Signup Busy Volunteer Check Failed"
    assert notification.from_display_name == "UUMC System"


def test_send_quietly_reports_failure(dispatcher):
    notification = build_signup_notification(ResourceType.GREETERS, make_record(role="greeter1"), OPERATOR)

    assert send_quietly(dispatcher, notification) is True
    dispatcher.fail = True
    assert send_quietly(dispatcher, notification) is False
    assert len(dispatcher.sent) == 1


def test_mail_dispatcher_builds_message(app):
    class FakeMail:
        def __init__(self):
            self.outbox = []

        def send(self, message):
            self.outbox.append(message)

    fake_mail = FakeMail()
    notification = build_signup_notification(
        ResourceType.FOOD, make_record(role="volunteer1"), OPERATOR, FOOD_COORDINATOR
    )

    with app.app_context():
        MailDispatcher(fake_mail, "alerts@samuelholley.com").send(notification)

    [message] = fake_mail.outbox
    assert message.recipients == ["ann@gmail.com"]
    assert message.cc == [FOOD_COORDINATOR]
    assert message.bcc == [OPERATOR]
    assert "UUMC Food Distribution" in str(message.sender)
    assert "alerts@samuelholley.com" in str(message.sender)
    assert message.subject == "Food Distribution Volunteer Sign-up Confirmed: Ann | December 7, 2025"
