from flask_wtf import FlaskForm
from flask_wtf.file import FileAllowed, FileField, FileRequired
from wtforms import (
    BooleanField,
    HiddenField,
    IntegerField,
    SelectField,
    StringField,
    SubmitField,
    TextAreaField,
)
from wtforms.validators import InputRequired, Length, NumberRange, Optional


class NovelForm(FlaskForm):
    title = StringField("Working title", validators=[InputRequired(), Length(max=150)])
    brief = TextAreaField("Author's brief", validators=[Optional(), Length(max=4000)])
    setting = StringField("Setting", validators=[Optional(), Length(max=255)])
    chapter_count = IntegerField(
        "Chapters",
        default=12,
        validators=[Optional(), NumberRange(min=1, max=60)],
        description="How many chapters the outline should plan",
    )
    submit = SubmitField("Save novel")


class CharacterForm(FlaskForm):
    character_id = HiddenField(validators=[Optional()])
    name = StringField("Name", validators=[InputRequired(), Length(max=120)])
    role = StringField("Role", validators=[Optional(), Length(max=120)])
    description = TextAreaField("Description", validators=[Optional()])
    motive = TextAreaField("Motive", validators=[Optional()])
    alibi = TextAreaField("Alibi", validators=[Optional()])
    secret = TextAreaField("Secret", validators=[Optional()])
    is_victim = BooleanField("Victim")
    is_culprit = BooleanField("Culprit")
    submit = SubmitField("Save character")


class UploadForm(FlaskForm):
    document = FileField(
        "Text file",
        validators=[FileRequired(), FileAllowed(["txt", "md"], "Upload a .txt or .md file.")],
    )
    target = SelectField(
        "Use as",
        choices=[("idea", "Premise"), ("outline", "Outline")],
        default="outline",
    )
    submit = SubmitField("Upload")


class DeleteForm(FlaskForm):
    submit = SubmitField("Delete")
