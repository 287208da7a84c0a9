from django.contrib.auth.models import AbstractUser
from django.db import models
from phonenumber_field.modelfields import PhoneNumberField

class User(AbstractUser):
    class Roles(models.TextChoices):
        ADMIN = "ADMIN", "Admin"
        USER = "USER", "User"

    # Role fields define permissions in the app
    # ADMIN: full access, reviews change requests, receives change notifications
    # USER: field staff; reads everything, edits what they created
    role = models.CharField(max_length=20, choices=Roles.choices, default=Roles.USER)

    # Sign-in is by email, username mirrors it for accounts created through the API
    email = models.EmailField("email address", unique=True)

    phone_number = PhoneNumberField(blank=True, null=True, unique=True)

    # Firebase Cloud Messaging registration token of the user's current device
    fcm_token = models.CharField(max_length=512, blank=True, null=True)

    updated_at = models.DateTimeField(auto_now=True)

    @property
    def is_admin_role(self):
        return self.is_superuser or self.role == self.Roles.ADMIN

    def __str__(self):
        return f"{self.email or self.username} ({self.get_role_display()})"
