from pydantic import BaseModel


class WelcomeResponse(BaseModel):
	welcome: str
