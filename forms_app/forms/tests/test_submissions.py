from __future__ import annotations

from unittest import mock

from django.contrib.auth.models import AnonymousUser, User
from django.db import IntegrityError, transaction
import pytest

from forms_app.forms import services
from forms_app.forms.exceptions import (
    AnswerValidationError,
    FormConflict,
    FormExpired,
    FormUnavailable,
)
from forms_app.forms.models import (
    Activity,
    Answer,
    Form,
    Question,
    Share,
    Submission,
    current_timestamp,
)
from forms_app.forms.submissions import submit_answers

pytestmark = pytest.mark.django_db


@pytest.fixture
def users(db):
    owner = User.objects.create_user(username="test", password="x")
    other = User.objects.create_user(username="someUser", password="x")
    return owner, other


@pytest.fixture
def form(users):
    owner, other = users
    return Form.objects.create(
        hash="abcdefg", title="Title of a Form", owner=owner, permit_all_users=True
    )


@pytest.fixture
def questions(form):
    name = services.create_question(form, Question.Types.SHORT, "Name")
    name.is_required = True
    name.save()
    colour = services.create_question(form, Question.Types.MULTIPLE_CHOICE, "Colour")
    pets = services.create_question(form, Question.Types.MULTIPLE_UNIQUE, "Pets")
    day = services.create_question(form, Question.Types.DATE, "Day")
    meeting = services.create_question(form, Question.Types.DATETIME, "Meeting")
    options = {
        "red": services.create_option(colour, "Red"),
        "blue": services.create_option(colour, "Blue"),
        "cat": services.create_option(pets, "Cat"),
        "dog": services.create_option(pets, "Dog"),
    }
    return {
        "name": name,
        "colour": colour,
        "pets": pets,
        "day": day,
        "meeting": meeting,
        "options": options,
    }


def test_valid_submission_is_stored_with_option_texts(users, form, questions):
    owner, other = users
    options = questions["options"]
    submission = submit_answers(
        other,
        form,
        {
            str(questions["name"].id): ["Jane"],
            str(questions["colour"].id): [str(options["blue"].id)],
            str(questions["pets"].id): [str(options["cat"].id), str(options["dog"].id)],
            str(questions["day"].id): ["2024-02-29"],
            str(questions["meeting"].id): ["2024-02-29 13:45"],
        },
    )
    assert submission.user == other
    assert submission.form == form
    texts = sorted(
        Answer.objects.filter(submission=submission).values_list("text", flat=True)
    )
    assert texts == ["2024-02-29", "2024-02-29 13:45", "Blue", "Cat", "Dog", "Jane"]
    assert Activity.objects.filter(
        subject=Activity.Subject.NEW_SUBMISSION, affected="test", actor=other
    ).exists()


def test_required_question_must_be_answered(users, form, questions):
    owner, other = users
    with pytest.raises(AnswerValidationError) as exc:
        submit_answers(other, form, {str(questions["name"].id): ["  "]})
    assert exc.value.question_id == questions["name"].id
    assert not Submission.objects.exists()


def test_single_choice_accepts_one_option(users, form, questions):
    owner, other = users
    options = questions["options"]
    with pytest.raises(AnswerValidationError) as exc:
        submit_answers(
            other,
            form,
            {
                str(questions["name"].id): ["Jane"],
                str(questions["colour"].id): [
                    str(options["red"].id),
                    str(options["blue"].id),
                ],
            },
        )
    assert exc.value.question_id == questions["colour"].id


def test_option_must_belong_to_question(users, form, questions):
    owner, other = users
    with pytest.raises(AnswerValidationError) as exc:
        submit_answers(
            other,
            form,
            {
                str(questions["name"].id): ["Jane"],
                str(questions["colour"].id): [str(questions["options"]["cat"].id)],
            },
        )
    assert exc.value.question_id == questions["colour"].id


@pytest.mark.parametrize(
    "key,value",
    [
        ("day", "29/02/2024"),
        ("day", "2023-02-29"),
        ("day", "20240229"),
        ("day", "2024-W09-4"),
        ("day", "2024-02-29 13:45"),
        ("meeting", "tomorrow"),
        ("meeting", "2024-02-29"),
        ("meeting", "20240229T1345"),
        ("meeting", "2024-02-29T13:45"),
        ("meeting", "2024-02-29 13:45+01:00"),
    ],
)
def test_temporal_answers_must_parse(users, form, questions, key, value):
    owner, other = users
    with pytest.raises(AnswerValidationError) as exc:
        submit_answers(
            other,
            form,
            {str(questions["name"].id): ["Jane"], str(questions[key].id): [value]},
        )
    assert exc.value.question_id == questions[key].id


def test_answers_for_foreign_questions_are_rejected(users, form, questions):
    owner, other = users
    elsewhere = Form.objects.create(hash="elsewhere", owner=owner)
    foreign = services.create_question(elsewhere, Question.Types.SHORT, "Other")
    with pytest.raises(AnswerValidationError):
        submit_answers(
            other,
            form,
            {str(questions["name"].id): ["Jane"], str(foreign.id): ["x"]},
        )


def test_submit_once_rejects_second_submission(users, form, questions):
    owner, other = users
    answers = {str(questions["name"].id): ["Jane"]}
    submit_answers(other, form, answers)
    with pytest.raises(FormConflict):
        submit_answers(other, form, answers)
    assert Submission.objects.filter(form=form, user=other).count() == 1


def test_lost_race_on_unique_constraint_is_a_conflict(users, form, questions):
    owner, other = users
    answers = {str(questions["name"].id): ["Jane"]}
    with mock.patch.object(
        Submission.objects, "create", side_effect=IntegrityError("duplicate")
    ):
        with pytest.raises(FormConflict):
            submit_answers(other, form, answers)


def test_owner_can_submit_repeatedly(users, form, questions):
    owner, other = users
    answers = {str(questions["name"].id): ["Jane"]}
    submit_answers(owner, form, answers)
    submit_answers(owner, form, answers)
    assert Submission.objects.filter(form=form, user=owner).count() == 2


def test_submit_once_disabled_allows_repeats(users, form, questions):
    owner, other = users
    form.submit_once = False
    form.save()
    answers = {str(questions["name"].id): ["Jane"]}
    submit_answers(other, form, answers)
    submit_answers(other, form, answers)
    assert Submission.objects.filter(form=form, user=other).count() == 2


def test_anonymous_form_does_not_record_user(users, form, questions):
    owner, other = users
    form.is_anonymous = True
    form.save()
    answers = {str(questions["name"].id): ["Jane"]}
    first = submit_answers(other, form, answers)
    second = submit_answers(other, form, answers)
    assert first.user is None
    assert second.user is None


def test_expired_form_rejects_submissions(users, form, questions):
    owner, other = users
    form.expires = current_timestamp() - 60
    form.save()
    with pytest.raises(FormExpired):
        submit_answers(other, form, {str(questions["name"].id): ["Jane"]})


def test_unshared_form_is_unavailable(users, form, questions):
    owner, other = users
    form.permit_all_users = False
    form.save()
    with pytest.raises(FormUnavailable):
        submit_answers(other, form, {str(questions["name"].id): ["Jane"]})


def test_link_holder_can_submit_anonymously(users, form, questions):
    owner, other = users
    form.permit_all_users = False
    form.save()
    link = services.create_share(form, Share.Type.LINK, "", owner)
    answers = {str(questions["name"].id): ["Jane"]}
    with pytest.raises(FormUnavailable):
        submit_answers(AnonymousUser(), form, answers)
    submission = submit_answers(
        AnonymousUser(), form, answers, link_hash=link.share_with
    )
    assert submission.user is None


@pytest.mark.parametrize(
    "key,value,stored",
    [
        ("day", " 2024-2-9 ", "2024-02-09"),
        ("meeting", "2024-02-29 9:05", "2024-02-29 09:05"),
        ("meeting", "2024-02-29 13:45:30", "2024-02-29 13:45:30"),
    ],
)
def test_temporal_answers_are_stored_normalised(
    users, form, questions, key, value, stored
):
    owner, other = users
    submission = submit_answers(
        other,
        form,
        {str(questions["name"].id): ["Jane"], str(questions[key].id): [value]},
    )
    answer = submission.answers.get(question=questions[key])
    assert answer.text == stored


def test_unique_constraint_rejects_second_submit_once_row(users, form):
    owner, other = users
    Submission.objects.create(form=form, user=other, enforce_once=True)
    with pytest.raises(IntegrityError):
        with transaction.atomic():
            Submission.objects.create(form=form, user=other, enforce_once=True)
    assert Submission.objects.filter(form=form, user=other).count() == 1


def test_unique_constraint_ignores_unlimited_and_anonymous_rows(users, form):
    owner, other = users
    Submission.objects.create(form=form, user=other, enforce_once=True)
    Submission.objects.create(form=form, user=other, enforce_once=False)
    Submission.objects.create(form=form, user=other, enforce_once=False)
    Submission.objects.create(form=form, user=None, enforce_once=False)
    Submission.objects.create(form=form, user=None, enforce_once=False)
    assert Submission.objects.filter(form=form).count() == 5


def test_constraint_stops_duplicate_when_existing_check_is_missed(
    users, form, questions
):
    owner, other = users
    answers = {str(questions["name"].id): ["Jane"]}
    submit_answers(other, form, answers)

    # A concurrent request that read before the first one committed
    stale = mock.Mock()
    stale.exists.return_value = False
    with mock.patch.object(Submission.objects, "filter", return_value=stale):
        with pytest.raises(FormConflict):
            submit_answers(other, form, answers)

    assert Submission.objects.filter(form=form, user=other).count() == 1
    assert Answer.objects.filter(submission__form=form).count() == 1


def test_failed_activity_rolls_back_submission(users, form, questions):
    owner, other = users
    with mock.patch(
        "forms_app.forms.submissions.publish_new_submission",
        side_effect=RuntimeError("activity store down"),
    ):
        with pytest.raises(RuntimeError):
            submit_answers(other, form, {str(questions["name"].id): ["Jane"]})
    assert not Submission.objects.exists()
    assert not Answer.objects.exists()
