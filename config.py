import os

# Store
DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "elanstore")

# Configuration
STORE_NAME = os.getenv("STORE_NAME", "Elan")
PRIMARY_CURRENCY = os.getenv("PRIMARY_CURRENCY", "INR")
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*").split(",")
CAS_MAX_RETRIES = int(os.getenv("CAS_MAX_RETRIES", "5"))

# Security
JWT_SECRET = os.getenv("JWT_SECRET", "devsecret_change_me_elanstore_local_only")
JWT_EXP_MIN = int(os.getenv("JWT_EXP_MIN", "60"))

# Payments
STRIPE_SECRET = os.getenv("STRIPE_SECRET_KEY")
PAYMENT_SIGNING_SECRET = os.getenv("PAYMENT_SIGNING_SECRET")

# Uploads
CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET")
UPLOAD_MAX_BYTES = int(os.getenv("UPLOAD_MAX_BYTES", str(5 * 1024 * 1024)))  # 5MB
UPLOAD_MAX_FILES = int(os.getenv("UPLOAD_MAX_FILES", "5"))
