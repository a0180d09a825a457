from django.contrib.auth.models import AbstractUser
from django.db import models
from phonenumber_field.modelfields import PhoneNumberField

class User(AbstractUser):
    class Roles(models.TextChoices):
        CLIENT = "CLIENT", "Client"
        DRIVER = "DRIVER", "Driver"
        ADMIN = "ADMIN", "Admin"

    # Role fields define permissions in the app
    # CLIENT: Can place and track gas orders
    # DRIVER: Has a logistics.Driver profile and handles deliveries
    # ADMIN: Assigns/reassigns drivers, sees every order
    role = models.CharField(max_length=20, choices=Roles.choices, default=Roles.CLIENT)

    # Using PhoneNumberField to validate Nigerian numbers (+234...)
    phone_number = PhoneNumberField(blank=True, null=True, unique=True, region="NG")

    # Blocked accounts keep their history but cannot order or be matched as drivers
    is_blocked = models.BooleanField(default=False)

    @property
    def is_admin_user(self):
        return self.role == self.Roles.ADMIN or self.is_staff

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"
