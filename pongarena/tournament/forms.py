"""Forms for the tournament blueprint."""

import re

from flask import current_app
from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict
from wtforms import (
    DateTimeField,
    FieldList,
    Form,
    FormField,
    IntegerField,
    SelectField,
    StringField,
)
from wtforms.validators import (
    AnyOf,
    DataRequired,
    Length,
    NumberRange,
    Optional,
    Regexp,
    ValidationError,
)

from pongarena.core.constants import (
    ALIAS_MAX_LENGTH,
    CLIENT_INVITE_STATES,
    DOUBLE_ELIMINATION,
    MAX_PARTICIPANTS,
    SEED_MAX,
    SINGLE_ELIMINATION,
    TOURNAMENT_NAME_MAX_LENGTH,
    TOURNAMENT_NAME_MIN_LENGTH,
)

ISO_DATETIME_FORMATS = [
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M",
]


def _strip(value):
    return value.strip() if isinstance(value, str) else value


def _snake_case(key):
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


def formdata_from_json(payload):
    """Flatten a JSON body into the MultiDict layout WTForms expects.

    Lists of objects become ``name-<index>-<field>`` keys, which is how
    ``FieldList(FormField(...))`` reads its entries.
    """
    items = []
    if not isinstance(payload, dict):
        return MultiDict(items)

    for key, value in payload.items():
        name = _snake_case(key)
        if isinstance(value, list):
            for index, entry in enumerate(value):
                if not isinstance(entry, dict):
                    items.append((f"{name}-{index}-alias", ""))
                    continue
                # Always emit the alias so an empty entry fails validation.
                items.append((f"{name}-{index}-alias", str(entry.get("alias") or "")))
                for sub_key, sub_value in entry.items():
                    if sub_key == "alias" or sub_value is None:
                        continue
                    items.append((f"{name}-{index}-{_snake_case(sub_key)}", str(sub_value)))
        elif value is not None:
            items.append((name, str(value)))
    return MultiDict(items)


class ParticipantForm(Form):
    """A single entry of a tournament's participant list."""

    alias = StringField(
        "Alias",
        validators=[DataRequired(), Length(max=ALIAS_MAX_LENGTH)],
        filters=[_strip],
    )
    user_id = StringField("Linked Account", validators=[Optional()], filters=[_strip])
    invite_state = StringField(
        "Invite State",
        validators=[Optional(), AnyOf(CLIENT_INVITE_STATES)],
        filters=[_strip],
    )
    seed = IntegerField("Seed", validators=[Optional(), NumberRange(min=1, max=SEED_MAX)])


class CreateTournamentForm(FlaskForm):
    """Payload for creating a tournament and its bracket."""

    class Meta:
        csrf = False

    name = StringField(
        "Tournament Name",
        validators=[
            DataRequired(),
            Length(min=TOURNAMENT_NAME_MIN_LENGTH, max=TOURNAMENT_NAME_MAX_LENGTH),
        ],
        filters=[_strip],
    )

    owner_id = StringField(
        "Owner",
        validators=[
            DataRequired(),
            Regexp(r"^[^/]+$", message="Owner id must not contain '/'."),
        ],
        filters=[_strip],
    )

    bracket_type = SelectField(
        "Bracket Type",
        choices=[
            (SINGLE_ELIMINATION, "Single Elimination"),
            (DOUBLE_ELIMINATION, "Double Elimination"),
        ],
        default=SINGLE_ELIMINATION,
    )

    starts_at = DateTimeField(
        "Starts At", format=ISO_DATETIME_FORMATS, validators=[Optional()]
    )

    participants = FieldList(FormField(ParticipantForm))

    def validate_participants(self, field):
        """Cap the field size and keep aliases unique (case-sensitive)."""
        limit = current_app.config.get("TOURNAMENT_MAX_PARTICIPANTS", MAX_PARTICIPANTS)
        if len(field.entries) > limit:
            raise ValidationError(f"At most {limit} participants are allowed.")

        seen = set()
        for entry in field.entries:
            alias = entry.form.alias.data
            if alias and alias in seen:
                raise ValidationError(f"Duplicate alias: {alias}")
            seen.add(alias)

    def to_service_data(self):
        """Return the cleaned payload for TournamentService.create_tournament."""
        return {
            "name": self.name.data,
            "owner_id": self.owner_id.data,
            "bracket_type": self.bracket_type.data,
            "starts_at": self.starts_at.data,
            "participants": [
                {
                    "alias": entry.form.alias.data,
                    "user_id": entry.form.user_id.data or None,
                    "invite_state": entry.form.invite_state.data or None,
                    "seed": entry.form.seed.data,
                }
                for entry in self.participants.entries
            ],
        }


class MatchResultForm(FlaskForm):
    """Final result of a bracket match, as reported by the game server."""

    class Meta:
        csrf = False

    winner_id = StringField("Winner", validators=[DataRequired()], filters=[_strip])
    score_a = IntegerField("Score A", validators=[Optional(), NumberRange(min=0)])
    score_b = IntegerField("Score B", validators=[Optional(), NumberRange(min=0)])
