from django.db.models.signals import post_delete, pre_save
from django.dispatch import receiver

from .models import SiteImage


@receiver(post_delete, sender=SiteImage)
def delete_image_file(sender, instance, **kwargs):
    # row is gone, drop the stored photo as well
    if instance.image:
        instance.image.delete(save=False)


@receiver(pre_save, sender=SiteImage)
def delete_replaced_image_file(sender, instance, **kwargs):
    if instance._state.adding:
        return
    previous = SiteImage.objects.filter(pk=instance.pk).values_list('image', flat=True).first()
    if previous and previous != instance.image.name:
        instance.image.storage.delete(previous)
