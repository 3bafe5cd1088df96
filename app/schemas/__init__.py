from app.schemas.auth import Token, UserCreate, UserLogin, UserResponse
from app.schemas.pricing import Coordinate, FareRequest, FareResult
from app.schemas.guest import GuestIdentityIssued, GuestValidationResponse, GuestMigrationResponse
from app.schemas.ride import RideSessionCreate, RideSessionResponse, RideEventResponse
from app.schemas.offer import OfferCreate, OfferResponse, SelectOfferResponse
from app.schemas.verification import VerificationTokenIssued, VerifyTokenResponse
