"""
Configuration for the driver tracking client
"""

from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    """Application settings"""
    
    # Fleet API
    BASE_URL: str = "http://localhost:3000"
    API_PREFIX: str = "/v1"
    HTTP_TIMEOUT: float = 10.0
    
    # Realtime connection
    LOCATIONS_NAMESPACE: str = "/locations"
    SOCKET_TIMEOUT: float = 10.0
    RECONNECTION_ATTEMPTS: int = 5
    RECONNECTION_DELAY: float = 2.0
    
    # Credentials
    TOKEN_KEY: str = "accessToken"
    TOKEN_PATH: str = "~/.driver-tracker/credentials.json"
    
    # Tracking
    TRACKING_INTERVAL: int = 5  # seconds
    DISTANCE_INTERVAL_METERS: float = 5.0
    HISTORY_LIMIT: int = 100
    SIMULATED_SPEED_KMH: float = 30.0
    
    # Control API
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8000
    
    # Service Configuration
    SERVICE_NAME: str = "driver-tracker"
    LOG_LEVEL: str = "INFO"
    VEHICLE_ID: Optional[str] = None  # overrides the vehicle assigned to the user
    
    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def api_url(self) -> str:
        return f"{self.BASE_URL.rstrip('/')}{self.API_PREFIX}"

settings = Settings()
