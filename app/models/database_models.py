from sqlalchemy import Column, Integer, String, Text, Float, DateTime, Boolean, JSON, ForeignKey, Index, SmallInteger
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime

Base = declarative_base()

class Business(Base):
    __tablename__ = "businesses"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), default="draft", nullable=False, index=True)  # 'draft', 'published', 'suspended'
    address = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True, index=True)
    state = Column(String(100), nullable=True, index=True)
    zip = Column(String(10), nullable=True, index=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    rating = Column(Float, default=0.0, nullable=False)
    review_count = Column(Integer, default=0, nullable=False)
    price_tier = Column(SmallInteger, nullable=True)  # 1 ($) to 4 ($$$$)
    hours = Column(JSON, nullable=True)  # {"monday": {"open": "09:00", "close": "17:00"}, "sunday": "closed"}
    verified = Column(Boolean, default=False, nullable=False)
    featured = Column(Boolean, default=False, nullable=False)
    sponsored = Column(Boolean, default=False, nullable=False)
    service_area_radius = Column(Float, nullable=True)  # miles
    timezone = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    categories = relationship("BusinessCategory", back_populates="business")
    photos = relationship("BusinessPhoto", back_populates="business")
    reviews = relationship("Review", back_populates="business")

    # Indexes for performance
    __table_args__ = (
        Index('idx_business_fulltext', 'name', 'description', mysql_prefix='FULLTEXT'),
        Index('idx_business_geo', 'latitude', 'longitude'),
        Index('idx_business_default_rank', 'status', 'featured', 'rating'),
    )

class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True, index=True)

class BusinessCategory(Base):
    __tablename__ = "business_categories"

    business_id = Column(String(64), ForeignKey("businesses.id"), primary_key=True)
    category_id = Column(Integer, ForeignKey("categories.id"), primary_key=True)
    position = Column(Integer, default=0, nullable=False)

    business = relationship("Business", back_populates="categories")
    category = relationship("Category")

class BusinessPhoto(Base):
    __tablename__ = "business_photos"

    id = Column(Integer, primary_key=True)
    business_id = Column(String(64), ForeignKey("businesses.id"), nullable=False, index=True)
    url = Column(String(500), nullable=False)
    alt_text = Column(String(255), nullable=True)
    is_primary = Column(Boolean, default=False, nullable=False)
    position = Column(Integer, default=0, nullable=False)

    business = relationship("Business", back_populates="photos")

class Review(Base):
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True)
    business_id = Column(String(64), ForeignKey("businesses.id"), nullable=False)
    rating = Column(Float, nullable=False)
    text = Column(Text, nullable=True)
    user_name = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    business = relationship("Business", back_populates="reviews")

    # Trending counts reviews per business inside a time window
    __table_args__ = (
        Index('idx_review_business_created', 'business_id', 'created_at'),
    )

class ZipCode(Base):
    __tablename__ = "zip_codes"

    zip = Column(String(10), primary_key=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
