from pydantic import BaseModel, ConfigDict, Field


class RegisterRequest(BaseModel):
    username: str
    password: str

class LoginRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str
    password: str
    remember_me: bool = Field(default=False, alias="rememberMe")

class MessageResponse(BaseModel):
    message: str

class LoginResponse(BaseModel):
    message: str
    token: str

class VerifyTokenResponse(BaseModel):
    username: str
