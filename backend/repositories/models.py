"""
SQLAlchemy ORM models for persistence.
"""
from datetime import datetime
from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, JSON, String
from sqlalchemy.orm import relationship

from db import Base


class ProjectORM(Base):
    __tablename__ = "projects"

    id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=False)
    template_image_url = Column(String, nullable=True)
    template_width = Column(Integer, nullable=True)
    template_height = Column(Integer, nullable=True)
    owner_tier = Column(String, nullable=False, default="free")
    status = Column(String, nullable=False, default="active")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    fields = relationship(
        "FieldORM",
        back_populates="project",
        cascade="all, delete-orphan",
    )
    submissions = relationship(
        "SubmissionORM",
        back_populates="project",
        cascade="all, delete-orphan",
    )


class FieldORM(Base):
    """
    One template field, stored flat in wire naming.

    Every column is nullable: rows written by older editors may be sparse or
    hold pixel coordinates, and are normalized/migrated on load.
    """
    __tablename__ = "fields"

    row_id = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, nullable=False, index=True)
    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    field_type = Column(String, nullable=True)
    field_name = Column(String, nullable=True)
    x_position = Column(Float, nullable=True)
    y_position = Column(Float, nullable=True)
    width = Column(Float, nullable=True)
    height = Column(Float, nullable=True)
    shape = Column(String, nullable=True)
    font_family = Column(String, nullable=True)
    font_size = Column(Float, nullable=True)
    font_weight = Column(Integer, nullable=True)
    font_bold = Column(Boolean, nullable=True)
    font_italic = Column(Boolean, nullable=True)
    font_color = Column(String, nullable=True)
    text_align = Column(String, nullable=True)
    letter_spacing = Column(Float, nullable=True)
    line_height = Column(Float, nullable=True)
    border_enabled = Column(Boolean, nullable=True)
    border_size = Column(Float, nullable=True)
    border_color = Column(String, nullable=True)
    background_color = Column(String, nullable=True)
    background_opacity = Column(Float, nullable=True)
    opacity = Column(Float, nullable=True)
    rotation = Column(Float, nullable=True)
    shadow_enabled = Column(Boolean, nullable=True)
    shadow_blur = Column(Float, nullable=True)
    shadow_color = Column(String, nullable=True)
    shadow_offset_x = Column(Float, nullable=True)
    shadow_offset_y = Column(Float, nullable=True)
    z_index = Column(Integer, nullable=True)

    project = relationship("ProjectORM", back_populates="fields")


class SubmissionORM(Base):
    __tablename__ = "submissions"

    id = Column(String, primary_key=True, index=True)
    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    participant_name = Column(String, nullable=False)
    field_values = Column(JSON, nullable=True)
    photo_url = Column(String, nullable=True)
    generated_card_url = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    project = relationship("ProjectORM", back_populates="submissions")
