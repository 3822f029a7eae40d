import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('rides', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Rider',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('notes', models.TextField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('ride', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='riders', to='rides.ride')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ride_bookings', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['created_at'],
                'indexes': [models.Index(fields=['ride', 'created_at'], name='rider_ride_created_idx')],
                'constraints': [models.UniqueConstraint(fields=('ride', 'user'), name='rider_ride_user_unique')],
            },
        ),
        migrations.CreateModel(
            name='ArchivedRide',
            fields=[
                ('name', models.CharField(max_length=255)),
                ('ride_group', models.CharField(blank=True, max_length=255, null=True)),
                ('destination', models.CharField(blank=True, max_length=255, null=True)),
                ('distance', models.IntegerField(blank=True, null=True)),
                ('meet_point', models.CharField(blank=True, max_length=255, null=True)),
                ('route', models.CharField(blank=True, max_length=255, null=True)),
                ('leader', models.CharField(blank=True, max_length=255, null=True)),
                ('notes', models.TextField(blank=True, null=True)),
                ('ride_limit', models.IntegerField(default=-1, help_text='Maximum number of riders (-1 = no limit)')),
                ('id', models.UUIDField(editable=False, primary_key=True, serialize=False)),
                ('ride_date', models.DateTimeField()),
                ('deleted', models.BooleanField(default=False)),
                ('cancelled', models.BooleanField(default=False)),
                ('schedule_id', models.UUIDField(blank=True, null=True)),
                ('created_at', models.DateTimeField()),
                ('updated_at', models.DateTimeField()),
                ('archived_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'ordering': ['ride_date'],
                'indexes': [models.Index(fields=['ride_date'], name='archived_ride_date_idx')],
            },
        ),
        migrations.CreateModel(
            name='ArchivedRider',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('notes', models.TextField(blank=True, null=True)),
                ('created_at', models.DateTimeField()),
                ('ride', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='riders', to='rides.archivedride')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='archived_ride_bookings', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['created_at'],
                'constraints': [models.UniqueConstraint(fields=('ride', 'user'), name='archived_rider_ride_user_unique')],
            },
        ),
    ]
