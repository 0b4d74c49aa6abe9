from enum import Enum

from ..extensions import db
from .base import EntityKind, TimestampMixin, entity


class ColorwayStatus(str, Enum):
    ACTIVE = "active"
    RETIRED = "retired"
    IDEA = "idea"


class BaseStatus(str, Enum):
    ACTIVE = "active"
    RETIRED = "retired"


class Technique(str, Enum):
    SOLID = "solid"
    TONAL = "tonal"
    VARIEGATED = "variegated"
    SPECKLED = "speckled"
    OTHER = "other"


class Weight(str, Enum):
    LACE = "lace"
    FINGERING = "fingering"
    DK = "dk"
    WORSTED = "worsted"
    BULKY = "bulky"


COLORS = (
    "red", "orange", "yellow", "green", "blue", "purple", "pink", "brown", "black",
    "white", "gray", "teal", "maroon", "navy", "beige", "tan", "coral", "turquoise",
)


class Account(TimestampMixin, db.Model):
    __tablename__ = "accounts"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    bases = db.relationship("Base", back_populates="account", order_by="Base.id")

    def active_bases(self):
        return [b for b in self.bases if b.status == BaseStatus.ACTIVE.value]


collection_colorways = db.Table(
    "collection_colorways",
    db.Column("collection_id", db.Integer, db.ForeignKey("collections.id", ondelete="CASCADE"), primary_key=True),
    db.Column("colorway_id", db.Integer, db.ForeignKey("colorways.id", ondelete="CASCADE"), primary_key=True),
)


@entity(EntityKind.COLORWAY)
class Colorway(TimestampMixin, db.Model):
    __tablename__ = "colorways"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    technique = db.Column(db.String(20))
    colors = db.Column(db.JSON)
    per_pan = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default=ColorwayStatus.ACTIVE.value)

    account = db.relationship("Account")
    media = db.relationship(
        "Media",
        back_populates="colorway",
        order_by=lambda: [Media.is_primary.desc(), Media.id],
        cascade="all, delete-orphan",
    )
    inventories = db.relationship("Inventory", back_populates="colorway")

    def tags(self) -> list[str]:
        """Remote product tags: colors, then technique, without duplicates."""
        tags = []
        for value in list(self.colors or []) + ([self.technique] if self.technique else []):
            if value and value not in tags:
                tags.append(value)
        return tags


@entity(EntityKind.BASE)
class Base(TimestampMixin, db.Model):
    __tablename__ = "bases"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    descriptor = db.Column(db.String(255), nullable=False)
    weight = db.Column(db.String(20), nullable=False, default=Weight.FINGERING.value)
    code = db.Column(db.String(50))
    retail_price = db.Column(db.Numeric(10, 2))
    cost = db.Column(db.Numeric(10, 2))
    status = db.Column(db.String(20), nullable=False, default=BaseStatus.ACTIVE.value)

    account = db.relationship("Account", back_populates="bases")


class Media(TimestampMixin, db.Model):
    __tablename__ = "media"

    id = db.Column(db.Integer, primary_key=True)
    colorway_id = db.Column(db.Integer, db.ForeignKey("colorways.id", ondelete="CASCADE"), nullable=False, index=True)
    file_path = db.Column(db.String(1024), nullable=False)
    is_primary = db.Column(db.Boolean, nullable=False, default=False)

    colorway = db.relationship("Colorway", back_populates="media")

    def url(self, base_url: str = "") -> str:
        if self.file_path.startswith(("http://", "https://")):
            return self.file_path
        return f"{base_url.rstrip('/')}/{self.file_path.lstrip('/')}"


@entity(EntityKind.COLLECTION)
class Collection(TimestampMixin, db.Model):
    __tablename__ = "collections"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default=BaseStatus.ACTIVE.value)

    colorways = db.relationship("Colorway", secondary=collection_colorways)
