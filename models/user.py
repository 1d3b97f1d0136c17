from sqlalchemy import Column, String, Text

from models.base_model import Base, BaseModel


class User(BaseModel, Base):
    __tablename__ = "users"

    # Stored lowercase; lookups normalize before querying
    username = Column(String(64), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    full_name = Column(String(255), nullable=False)
    avatar = Column(String(1024), nullable=False)
    cover_image = Column(String(1024), nullable=False, default="")
    password_hash = Column(String(255), nullable=False)
    # The single valid refresh token; NULL when logged out
    refresh_token = Column(Text, nullable=True)

    # Columns a caller may change through the profile update operation
    EDITABLE_FIELDS = ("full_name", "email", "username", "avatar", "cover_image")

    @property
    def password(self):
        raise AttributeError("Password: Write-only field")

    def __repr__(self):
        return f"<User {self.username}>"
